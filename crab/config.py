"""
Configuration constants for the crab credential store.
"""

import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

# Application Metadata
APP_NAME = "crab"  # Use: Name of the application and of its root logger. Type: str. Range: Any valid logger name.
APP_VERSION = "0.3.0"  # Use: Current version of the package. Type: str. Range: Semantic versioning string.

# File and Directory Names
CONFIG_DIR_NAME = ".crab"  # Use: Hidden directory within the user's home directory holding the database and its backups. Type: str. Range: Any valid directory name.
DATABASE_FILE = "credentials.json"  # Use: Filename of the credential database. Type: str. Range: Any valid filename.
LOG_FILE = "crab.log"  # Use: Filename of the optional rotating log. Type: str. Range: Any valid filename.
HOME_ENV_VAR = "CRAB_HOME"  # Use: Environment variable overriding the root directory. Type: str. Range: Any environment variable name.

# Storage Format
FORMAT_VERSION = "1.0"  # Use: Version string written to every saved database. Type: str. Range: Member of SUPPORTED_FORMAT_VERSIONS.
SUPPORTED_FORMAT_VERSIONS = ("1.0",)  # Use: Versions accepted when loading a database or a backup. Type: tuple[str]. Range: Non-empty tuple.
JSON_INDENT = 2  # Use: Indentation of the serialized document, kept stable for reproducible diffs. Type: int. Range: Non-negative integer.
TEMP_FILE_PREFIX = ".credentials-"  # Use: Prefix of the temporary file written next to the target before the atomic replace. Type: str. Range: Any valid filename prefix.
TEMP_FILE_SUFFIX = ".tmp"  # Use: Suffix of that temporary file. Type: str. Range: Any valid filename suffix.

# Backups
BACKUP_PREFIX = "credentials-backup-"  # Use: Filename prefix of backup snapshots. Type: str. Range: Any valid filename prefix.
BACKUP_SUFFIX = ".json"  # Use: Filename suffix of backup snapshots. Type: str. Range: Any valid filename suffix.
BACKUP_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"  # Use: ISO-8601 basic UTC timestamp embedded in backup names; no colons so names are valid on Windows. Type: str. Range: strftime format with second granularity.

# Security Settings
OWNER_ONLY_MODE = 0o600  # Use: POSIX mode applied to the database and backups (owner read/write). Type: int. Range: 0o600.

# Logging
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"  # Use: Format of every log record. Type: str. Range: Any logging format string.
LOG_MAX_BYTES = 2_000_000  # Use: Size at which the log file rotates. Type: int. Range: Positive integer.
LOG_BACKUP_COUNT = 3  # Use: Number of rotated log files kept. Type: int. Range: Positive integer.


@dataclass(frozen=True)
class StorePaths:
    """Filesystem locations used by one invocation."""
    root: Path
    database: Path
    backups: Path


def default_root() -> Path:
    """Return the root directory: $CRAB_HOME if set, else ~/.crab."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / CONFIG_DIR_NAME


def default_paths(root: Optional[Union[str, Path]] = None) -> StorePaths:
    """
    Resolve the store locations.

    Args:
        root: Explicit root directory. Falls back to default_root().
    Returns:
        StorePaths with the database file and the backup directory
        (the root itself, so backups sit beside the database).
    """
    root_path = Path(root).expanduser() if root is not None else default_root()
    return StorePaths(
        root=root_path,
        database=root_path / DATABASE_FILE,
        backups=root_path,
    )


def setup_logging(log_path: Optional[Union[str, Path]] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure the package logger with a console handler and, when
    log_path is given, a rotating file handler.

    Calling it again does not add duplicate handlers.
    """
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        logger.addHandler(console)

        if log_path is not None:
            log_path = Path(log_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                log_path,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    return logger
