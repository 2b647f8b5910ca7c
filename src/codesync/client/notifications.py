"""Cross-platform desktop notifications for CodeSync.

This module provides:
- Native OS notifications (Windows toast, macOS notification center, Linux notify-send)
- Helpers for the sync outcomes a user should hear about
"""

from __future__ import annotations

import logging
import platform
import subprocess
from dataclasses import dataclass
from enum import Enum, auto

logger = logging.getLogger(__name__)

APP_NAME = "CodeSync"


class NotificationType(Enum):
    """Type of notification."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CONFLICT = auto()


@dataclass
class Notification:
    """Represents a notification to display."""

    title: str
    message: str
    type: NotificationType = NotificationType.INFO


def _notify_windows(notification: Notification) -> bool:
    """Send notification on Windows using a PowerShell toast."""
    try:
        ps_script = f'''
        [Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null
        [Windows.Data.Xml.Dom.XmlDocument, Windows.Data.Xml.Dom.XmlDocument, ContentType = WindowsRuntime] | Out-Null

        $template = @"
        <toast>
            <visual>
                <binding template="ToastText02">
                    <text id="1">{notification.title}</text>
                    <text id="2">{notification.message}</text>
                </binding>
            </visual>
        </toast>
"@

        $xml = New-Object Windows.Data.Xml.Dom.XmlDocument
        $xml.LoadXml($template)
        $toast = New-Object Windows.UI.Notifications.ToastNotification $xml
        [Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier("{APP_NAME}").Show($toast)
        '''

        subprocess.run(
            ["powershell", "-ExecutionPolicy", "Bypass", "-Command", ps_script],
            capture_output=True,
            check=False,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
        return True
    except OSError as e:
        logger.debug("Windows notification failed: %s", e)
        return False


def _notify_macos(notification: Notification) -> bool:
    """Send notification on macOS using osascript."""
    try:
        title = notification.title.replace('"', '\\"')
        message = notification.message.replace('"', '\\"')

        script = f'display notification "{message}" with title "{title}"'
        subprocess.run(
            ["osascript", "-e", script],
            capture_output=True,
            check=True,
        )
        return True
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("macOS notification failed: %s", e)
        return False


def _notify_linux(notification: Notification) -> bool:
    """Send notification on Linux using notify-send."""
    urgency_map = {
        NotificationType.INFO: "normal",
        NotificationType.WARNING: "normal",
        NotificationType.ERROR: "critical",
        NotificationType.CONFLICT: "critical",
    }
    urgency = urgency_map.get(notification.type, "normal")

    try:
        subprocess.run(
            [
                "notify-send",
                "--urgency", urgency,
                "--app-name", APP_NAME,
                notification.title,
                notification.message,
            ],
            capture_output=True,
            check=True,
        )
        return True
    except FileNotFoundError:
        logger.debug("notify-send not found")
        return False
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("Linux notification failed: %s", e)
        return False


def send_notification(notification: Notification) -> bool:
    """Send a system notification.

    Args:
        notification: The notification to send.

    Returns:
        True if notification was sent, False if failed or unavailable.
    """
    system = platform.system()

    if system == "Windows":
        return _notify_windows(notification)
    elif system == "Darwin":
        return _notify_macos(notification)
    elif system == "Linux":
        return _notify_linux(notification)
    else:
        logger.warning("Notifications not supported on %s", system)
        return False


def notify_conflict(names: list[str]) -> bool:
    """Tell the user that files need a conflict resolution.

    Args:
        names: Conflicting file names.

    Returns:
        True if notification was sent.
    """
    if not names:
        return False

    if len(names) == 1:
        message = f"'{names[0]}' changed both locally and remotely."
    else:
        message = f"{len(names)} files changed both locally and remotely."

    return send_notification(Notification(
        title=f"{APP_NAME} - Conflict Detected",
        message=message,
        type=NotificationType.CONFLICT,
    ))


def notify_sync_complete(uploaded: int, downloaded: int) -> bool:
    """Send a sync complete notification.

    Args:
        uploaded: Number of files pushed to the remote store.
        downloaded: Number of files written locally.

    Returns:
        True if notification was sent.
    """
    if uploaded == 0 and downloaded == 0:
        return False

    parts = []
    if uploaded > 0:
        parts.append(f"{uploaded} uploaded")
    if downloaded > 0:
        parts.append(f"{downloaded} downloaded")

    return send_notification(Notification(
        title=f"{APP_NAME} - Sync Complete",
        message=", ".join(parts),
        type=NotificationType.INFO,
    ))


def notify_error(message: str) -> bool:
    """Send an error notification.

    Args:
        message: Error message.

    Returns:
        True if notification was sent.
    """
    return send_notification(Notification(
        title=f"{APP_NAME} - Error",
        message=message,
        type=NotificationType.ERROR,
    ))
