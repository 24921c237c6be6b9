"""Local project and inbox storage."""

from .local import LocalStore

__all__ = ["LocalStore"]
