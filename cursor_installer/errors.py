"""Exception hierarchy for cursor-installer."""

from __future__ import annotations

from pathlib import Path


class CursorInstallerError(Exception):
    """Base exception for installer operations."""


class PreflightError(CursorInstallerError):
    """Raised when the host does not meet install preconditions."""


class DirectoryCreationError(CursorInstallerError):
    """Raised when a required directory cannot be created."""


class DownloadError(CursorInstallerError):
    """Raised when a download exhausts its retries."""


class NetworkError(CursorInstallerError):
    """Raised by a network client when a single transfer fails."""


class VerificationError(CursorInstallerError):
    """Raised when a finished installation fails verification."""

    def __init__(self, message: str, failed: list[Path] | None = None) -> None:
        super().__init__(message)
        self.failed = failed or []


class RemovalError(CursorInstallerError):
    """Raised when removing installations leaves files behind."""


class UpdateError(CursorInstallerError):
    """Raised when an update requested during conflict resolution fails."""
