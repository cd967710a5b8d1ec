"""
File helpers shared by the database and the backup manager.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from crab import config
from crab.errors import IoFailure

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_bytes(path: PathLike) -> bytes:
    """
    Read a whole file.

    Raises:
        FileNotFoundError: the file does not exist (left to the caller).
        IoFailure: any other read error.
    """
    try:
        with open(path, 'rb') as f:
            return f.read()
    except FileNotFoundError:
        raise
    except OSError as e:
        logger.error(f"Error reading {path}: {e}", exc_info=True)
        raise IoFailure(f"Failed to read {path}: {e}", path=path) from e


def atomic_write_bytes(path: PathLike, data: bytes) -> None:
    """
    Replace *path* with *data* so that readers only ever see the old or the
    new content.

    The data goes to a temporary file in the same directory, is flushed
    and fsynced, and is then renamed over the target with os.replace().
    The temporary file is created with mode 0600, so the content is never
    readable by other users even before permissions are enforced.

    Raises:
        IoFailure: on any filesystem error. The target is untouched, since
            the rename is the last step.
    """
    path = Path(path)
    directory = path.parent
    tmp_path = None
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=config.TEMP_FILE_PREFIX,
            suffix=config.TEMP_FILE_SUFFIX,
            dir=directory,
        )
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, path)
        tmp_path = None
        _fsync_directory(directory)
    except OSError as e:
        logger.error(f"Error saving {path}: {e}", exc_info=True)
        raise IoFailure(f"Failed to write {path}: {e}", path=path) from e
    finally:
        if tmp_path is not None:
            _remove_orphan(tmp_path)


def exclusive_write_bytes(path: PathLike, data: bytes) -> None:
    """
    Write *data* to a new file at *path*, failing if it already exists.

    Raises:
        FileExistsError: *path* exists (left to the caller).
        IoFailure: any other error. A partially written file is removed.
    """
    path = Path(path)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, 'O_BINARY', 0),
                     config.OWNER_ONLY_MODE)
    except FileExistsError:
        raise
    except OSError as e:
        logger.error(f"Error creating {path}: {e}", exc_info=True)
        raise IoFailure(f"Failed to create {path}: {e}", path=path) from e

    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        logger.error(f"Error writing {path}: {e}", exc_info=True)
        _remove_orphan(path)
        raise IoFailure(f"Failed to write {path}: {e}", path=path) from e


def _fsync_directory(directory: Path) -> None:
    """
    Persist the rename itself. Not possible on Windows. The new content is
    already in place at this point, so a failure here is only logged.
    """
    if os.name != 'posix':
        return
    try:
        fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError as e:
        logger.warning(f"Could not fsync directory {directory}: {e}")


def _remove_orphan(path: PathLike) -> None:
    try:
        os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove temporary file {path}: {e}")
