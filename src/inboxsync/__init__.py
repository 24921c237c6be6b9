"""inboxsync: multi-project inbox synchronization for Notion."""

__version__ = "0.1.0"
