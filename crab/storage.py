"""
Storage management for the credential store.

SECURITY NOTICE:
Secrets are stored as plain text inside a file that only the owning user
may read. Anyone with access to that account can read them. There is no
cross-process locking: two invocations that load, mutate and save at the
same time race, and the last one to save wins.
"""

import datetime
import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from crab import config
from crab.entry import CredentialEntry, EntrySummary, next_timestamp, utc_now, validate_fields, UTC
from crab.errors import (
    CorruptData,
    DatabaseNotFound,
    DuplicateService,
    InvalidEntry,
    IoFailure,
    NotFound,
)
from crab.permissions import PermissionOutcome, restrict
from crab.utils import atomic_write_bytes, read_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseInfo:
    """File-level facts about a stored database."""
    version: str
    entries: int
    size: int
    modified: datetime.datetime
    location: Path


def parse_document(raw: bytes, source=None) -> Dict[str, CredentialEntry]:
    """
    Parse and validate a serialized database.

    Args:
        raw: File content.
        source: Path used in error messages.
    Returns:
        Entries keyed by service, in file order.
    Raises:
        CorruptData: the content is not valid JSON, does not have the
            expected structure, or any entry breaks an invariant.
    """
    try:
        data = json.loads(raw.decode('utf-8'))
    except UnicodeDecodeError as e:
        raise CorruptData(f"not valid UTF-8: {e}", path=source) from e
    except json.JSONDecodeError as e:
        raise CorruptData(f"not valid JSON: {e}", path=source) from e

    if not isinstance(data, dict):
        raise CorruptData("top level must be an object", path=source)

    version = data.get('version', config.FORMAT_VERSION)
    if version not in config.SUPPORTED_FORMAT_VERSIONS:
        raise CorruptData(f"unsupported format version {version!r}", path=source)

    raw_entries = data.get('entries')
    if not isinstance(raw_entries, list):
        raise CorruptData("'entries' must be a list", path=source)

    entries: Dict[str, CredentialEntry] = {}
    for index, item in enumerate(raw_entries):
        try:
            entry = CredentialEntry.from_dict(item)
        except InvalidEntry as e:
            raise CorruptData(f"entry {index}: {e}", path=source) from e
        except (ValueError, OverflowError, OSError) as e:
            raise CorruptData(f"entry {index}: bad timestamp: {e}", path=source) from e
        if entry.service in entries:
            raise CorruptData(f"entry {index}: duplicate service '{entry.service}'", path=source)
        entries[entry.service] = entry
    return entries


def serialize_entries(entries) -> bytes:
    """Serialize entries sorted by service, so equal sets give equal bytes."""
    data = {
        'version': config.FORMAT_VERSION,
        'entries': [e.to_dict() for e in sorted(entries, key=lambda e: e.service)],
    }
    text = json.dumps(data, indent=config.JSON_INDENT, ensure_ascii=False)
    return (text + '\n').encode('utf-8')


class Database:
    """
    In-memory collection of credential entries bound to one file.

    Instances are created with Database.load(), changed with add(),
    edit() and remove(), and written back with save(). Nothing touches
    the disk until save() or delete() is called.
    """

    def __init__(self, path: Union[str, Path], entries: Optional[Dict[str, CredentialEntry]] = None):
        self.path = Path(path)
        self._entries: Dict[str, CredentialEntry] = dict(entries or {})

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'Database':
        """
        Load the database stored at *path*.

        Returns:
            The loaded Database, or an empty one if the file does not exist.
        Raises:
            CorruptData: the file cannot be parsed or violates an invariant.
            IoFailure: the file exists but cannot be read.
        """
        path = Path(path)
        try:
            raw = read_bytes(path)
        except FileNotFoundError:
            logger.debug(f"No database at {path}; starting empty")
            return cls(path)

        entries = parse_document(raw, source=path)
        logger.debug(f"Loaded {len(entries)} entries from {path}")
        return cls(path, entries)

    @staticmethod
    def exists(path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def save(self, path: Optional[Union[str, Path]] = None) -> PermissionOutcome:
        """
        Write every entry to *path* (default: the path it was loaded from).

        The target is replaced atomically and then restricted to its owner.
        Saving to another path rebinds the database to it, so later
        delete() and info() calls act on the new file.

        Returns:
            ENFORCED, UNSUPPORTED, or FAILED when the data was committed
            but the permission call errored.
        Raises:
            IoFailure: the write failed. The previous file is unchanged.
        """
        target = Path(path) if path is not None else self.path
        atomic_write_bytes(target, serialize_entries(self._entries.values()))
        self.path = target
        outcome = restrict(target)
        logger.info(f"Saved {len(self._entries)} entries to {target}")
        return outcome

    def add(self, entry: CredentialEntry, overwrite: bool = False) -> CredentialEntry:
        """
        Insert *entry*, or replace an existing one when *overwrite* is set.

        A first insert stamps both timestamps with the current time. A
        replacement keeps the original created_at and advances updated_at.

        Raises:
            DuplicateService: the service exists and overwrite is False.
            InvalidEntry: service or secret is empty.
        """
        validate_fields(entry.service, entry.account, entry.secret)
        existing = self._entries.get(entry.service)
        if existing is not None:
            if not overwrite:
                raise DuplicateService(entry.service)
            stored = replace(
                entry,
                created_at=existing.created_at,
                updated_at=next_timestamp(existing.updated_at),
            )
            logger.debug(f"Overwrote credential for '{entry.service}'")
        else:
            now = utc_now()
            stored = replace(entry, created_at=now, updated_at=now)
            logger.debug(f"Added credential for '{entry.service}'")
        self._entries[entry.service] = stored
        return stored

    def get(self, service: str) -> CredentialEntry:
        try:
            return self._entries[service]
        except KeyError:
            raise NotFound(service) from None

    def edit(self, service: str, account: Optional[str] = None, secret: Optional[str] = None) -> CredentialEntry:
        """
        Change the account and/or secret of an existing entry.

        Fields left as None keep their value. updated_at always advances.

        Raises:
            NotFound: no entry for *service*.
            InvalidEntry: the new secret is empty.
        """
        updated = self.get(service).with_changes(account=account, secret=secret)
        self._entries[service] = updated
        logger.debug(f"Edited credential for '{service}'")
        return updated

    def remove(self, service: str) -> None:
        if service not in self._entries:
            raise NotFound(service)
        del self._entries[service]
        logger.debug(f"Removed credential for '{service}'")

    def list_entries(self) -> List[EntrySummary]:
        """
        Return (service, account, created_at, updated_at) for every entry,
        sorted by service. Secrets are never part of this projection.
        """
        return [e.summary() for e in sorted(self._entries.values(), key=lambda e: e.service)]

    def services(self) -> List[str]:
        return sorted(self._entries)

    def entries(self) -> List[CredentialEntry]:
        """All entries in insertion order."""
        return list(self._entries.values())

    def delete(self, backup_manager=None) -> Optional[Path]:
        """
        Remove the database file, optionally taking a backup first.

        Args:
            backup_manager: BackupManager used to snapshot the file before
                it is removed.
        Returns:
            Path of the backup, or None when no backup was requested.
        Raises:
            DatabaseNotFound: there is no file to delete.
            BackupCollision, IoFailure: the backup failed; nothing was deleted.
        """
        if not self.exists(self.path):
            raise DatabaseNotFound(self.path)

        backup_path = None
        if backup_manager is not None:
            backup_path = backup_manager.snapshot(self.path)

        try:
            os.remove(self.path)
        except FileNotFoundError:
            raise DatabaseNotFound(self.path) from None
        except OSError as e:
            logger.error(f"Error deleting database file {self.path}: {e}", exc_info=True)
            raise IoFailure(f"Failed to delete {self.path}: {e}", path=self.path) from e

        self._entries.clear()
        logger.info(f"Database file deleted: {self.path}")
        return backup_path

    def info(self) -> DatabaseInfo:
        """
        Describe the file on disk.

        Raises:
            DatabaseNotFound: the file does not exist.
            IoFailure: the file cannot be inspected.
        """
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            raise DatabaseNotFound(self.path) from None
        except OSError as e:
            raise IoFailure(f"Failed to inspect {self.path}: {e}", path=self.path) from e

        return DatabaseInfo(
            version=config.FORMAT_VERSION,
            entries=len(self._entries),
            size=st.st_size,
            modified=datetime.datetime.fromtimestamp(st.st_mtime, tz=UTC),
            location=self.path,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, service: object) -> bool:
        return service in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
