"""
crab credential store
Copyright (c) 2025

SECURITY NOTICE AND THREAT MODEL:
This package keeps named secrets for a single local user in one JSON file.
Secrets are NOT encrypted at rest; the only protection is that the file and
its backups are readable by the owning account alone. Do not store secrets
here on machines shared with people you do not trust with that account.
"""
from crab.backup import BackupManager
from crab.config import APP_VERSION, StorePaths, default_paths
from crab.entry import CredentialEntry, EntrySummary
from crab.errors import (
    BackupCollision,
    CorruptData,
    CredentialError,
    DatabaseNotFound,
    DuplicateService,
    InvalidEntry,
    IoFailure,
    NotFound,
    PermissionUnsupported,
)
from crab.permissions import PermissionOutcome
from crab.storage import Database, DatabaseInfo

__version__ = APP_VERSION
