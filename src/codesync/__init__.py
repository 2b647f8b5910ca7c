"""CodeSync - two-way sync between a remote document store and a local folder."""

__version__ = "0.1.0"
