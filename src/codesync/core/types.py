"""Shared types for codesync.

This module defines types and enums used by both client and server.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """State of the sync scheduler.

    Used by the scheduler state machine and reported to the CLI.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    CONFLICT_PENDING = "conflict_pending"
    ERROR = "error"


class SyncError(Exception):
    """Base exception for sync errors."""
