"""Inbox scanning."""

from .scanner import InboxScanner

__all__ = ["InboxScanner"]
