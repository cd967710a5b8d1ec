"""
Error kinds raised by the credential store.

Every failure surfaces as a subclass of CredentialError. The command layer
maps each class to a distinct process exit code through ``exit_code``.
"""

from typing import Optional


class CredentialError(Exception):
    """Base class for all credential store failures."""

    exit_code = 10

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFound(CredentialError, KeyError):
    """Raised when a requested service (or file) does not exist."""

    exit_code = 2

    def __init__(self, service: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"No credential found for '{service}'")
        self.service = service


class DatabaseNotFound(NotFound):
    """Raised when the database file itself is missing."""

    exit_code = 1

    def __init__(self, path) -> None:
        super().__init__(str(path), f"Database file not found: {path}")
        self.path = path


class DuplicateService(CredentialError):
    """Raised by add() when the service exists and overwrite is off."""

    exit_code = 3

    def __init__(self, service: str) -> None:
        super().__init__(f"Service '{service}' already exists")
        self.service = service


class IoFailure(CredentialError):
    """
    Raised when a filesystem operation fails.

    The underlying OSError is chained as ``__cause__``.
    """

    exit_code = 4

    def __init__(self, message: str, path=None) -> None:
        super().__init__(message)
        self.path = path


class CorruptData(CredentialError):
    """Raised when a database or backup file fails to parse or validate."""

    exit_code = 5

    def __init__(self, message: str, path=None) -> None:
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)
        self.path = path


class BackupCollision(CredentialError):
    """Raised when a backup file with the same name already exists."""

    exit_code = 6

    def __init__(self, path) -> None:
        super().__init__(f"Backup file already exists: {path}")
        self.path = path


class PermissionUnsupported(CredentialError):
    """Raised in strict mode when owner-only access could not be verified."""

    exit_code = 7

    def __init__(self, path, reason: str) -> None:
        super().__init__(f"Could not restrict permissions on {path}: {reason}")
        self.path = path
        self.reason = reason


class InvalidEntry(CredentialError, ValueError):
    """
    Raised when a new or edited entry violates the record invariants.

    Attributes:
        field: name of the offending field ('service', 'account' or 'secret').
    """

    exit_code = 8

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field
