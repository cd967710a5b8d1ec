"""
Backup snapshots of the credential database.

A snapshot is a byte-for-byte copy written to a new file; it does not
depend on the original surviving. Restoring validates the snapshot with
the same parser the database uses before it replaces anything.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from crab import config
from crab.entry import utc_now
from crab.errors import BackupCollision, DatabaseNotFound, IoFailure, NotFound
from crab.permissions import PermissionOutcome, restrict
from crab.storage import parse_document
from crab.utils import atomic_write_bytes, exclusive_write_bytes, read_bytes

logger = logging.getLogger(__name__)


class BackupManager:
    """
    Creates and restores database snapshots.

    Args:
        backup_dir: Directory for backups. When None, each backup is
            written next to the file it copies.
    """

    def __init__(self, backup_dir: Optional[Union[str, Path]] = None):
        self.backup_dir = Path(backup_dir) if backup_dir is not None else None
        # Permission outcome of the most recent snapshot or restore.
        self.last_outcome: Optional[PermissionOutcome] = None

    def _directory_for(self, source_path: Path) -> Path:
        return self.backup_dir if self.backup_dir is not None else source_path.parent

    def backup_name(self) -> str:
        stamp = utc_now().strftime(config.BACKUP_TIMESTAMP_FORMAT)
        return f"{config.BACKUP_PREFIX}{stamp}{config.BACKUP_SUFFIX}"

    def snapshot(self, source_path: Union[str, Path]) -> Path:
        """
        Copy *source_path* verbatim into a new timestamped backup file.

        Returns:
            Path of the backup. Whether it is owner-only is recorded in
            last_outcome.
        Raises:
            DatabaseNotFound: the source does not exist.
            BackupCollision: a backup with the same name already exists.
            IoFailure: reading or writing failed.
        """
        source_path = Path(source_path)
        try:
            data = read_bytes(source_path)
        except FileNotFoundError:
            raise DatabaseNotFound(source_path) from None

        directory = self._directory_for(source_path)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailure(f"Failed to create backup directory {directory}: {e}", path=directory) from e
        backup_path = directory / self.backup_name()
        try:
            exclusive_write_bytes(backup_path, data)
        except FileExistsError:
            logger.error(f"Refusing to overwrite existing backup {backup_path}")
            raise BackupCollision(backup_path) from None

        self.last_outcome = restrict(backup_path)
        logger.info(f"Database backup created: {backup_path}")
        return backup_path

    def restore(self, backup_path: Union[str, Path], target_path: Union[str, Path]) -> PermissionOutcome:
        """
        Replace *target_path* with the content of *backup_path*.

        Returns:
            The PermissionOutcome of the restored file; FAILED means the
            content was restored but the permission call errored.
        Raises:
            NotFound: the backup does not exist.
            CorruptData: the backup is not a valid database.
            IoFailure: the replace failed; the target is unchanged.
        """
        backup_path = Path(backup_path)
        target_path = Path(target_path)
        try:
            data = read_bytes(backup_path)
        except FileNotFoundError:
            raise NotFound(str(backup_path), f"Backup file not found: {backup_path}") from None

        entries = parse_document(data, source=backup_path)
        atomic_write_bytes(target_path, data)
        self.last_outcome = restrict(target_path)
        logger.info(f"Restored {len(entries)} entries from {backup_path} to {target_path}")
        return self.last_outcome

    def list_backups(self, source_path: Union[str, Path]) -> List[Path]:
        """Backups for *source_path*, oldest first."""
        directory = self._directory_for(Path(source_path))
        if not directory.is_dir():
            return []
        pattern = f"{config.BACKUP_PREFIX}*{config.BACKUP_SUFFIX}"
        return sorted(p for p in directory.glob(pattern) if p.is_file())

    def latest(self, source_path: Union[str, Path]) -> Optional[Path]:
        backups = self.list_backups(source_path)
        return backups[-1] if backups else None
