"""Error hierarchy for backup operations."""
from __future__ import annotations


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class CredentialFileError(BackupError):
    """Raised when the credential hand-off file cannot be written."""


__all__ = ["BackupError", "CredentialFileError"]
