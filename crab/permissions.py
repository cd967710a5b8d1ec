"""
Owner-only file permissions for the database and its backups.

POSIX systems get mode 0600, verified with stat() afterwards. Windows gets a
protected DACL holding a single ACE for the current user, which needs
pywin32. Where neither primitive is available the call is a best-effort
no-op that reports PermissionOutcome.UNSUPPORTED instead of pretending.
"""

import enum
import logging
import os
import platform
import stat
from pathlib import Path
from typing import Optional, Union

from crab import config
from crab.errors import IoFailure, PermissionUnsupported

logger = logging.getLogger(__name__)

IS_WINDOWS = platform.system() == "Windows"

if IS_WINDOWS:
    try:
        import win32api
        import win32con
        import win32file
        import win32security
        WINDOWS_SECURITY_AVAILABLE = True
    except ImportError:
        logger.warning("pywin32 not fully installed, cannot set Windows file permissions securely.")
        WINDOWS_SECURITY_AVAILABLE = False
else:
    WINDOWS_SECURITY_AVAILABLE = False

# Bits that must be clear for a file to count as owner-only.
_GROUP_OTHER_BITS = stat.S_IRWXG | stat.S_IRWXO

_ACCESS_DENIED = 5


class PermissionOutcome(enum.Enum):
    """
    ENFORCED: owner-only access is in place.
    UNSUPPORTED: the platform lacks the primitive or could not confirm it.
    FAILED: the chmod or ACL call itself returned an error.
    """
    ENFORCED = "enforced"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"

    @property
    def enforced(self) -> bool:
        return self is PermissionOutcome.ENFORCED


def restrict(path: Union[str, Path], strict: bool = False) -> PermissionOutcome:
    """
    Make *path* readable and writable by its owner only.

    Args:
        path: File to restrict. Must exist.
        strict: Raise instead of returning UNSUPPORTED or FAILED.
    Returns:
        The PermissionOutcome. Failures are logged, not raised, so callers
        that have already committed data can report them accurately.
    Raises:
        PermissionUnsupported: strict and the outcome is UNSUPPORTED.
        IoFailure: strict and the outcome is FAILED.
    """
    path = Path(path)
    try:
        if IS_WINDOWS:
            outcome, reason = _restrict_windows(path)
        else:
            outcome, reason = _restrict_posix(path)
    except IoFailure as e:
        logger.error(str(e), exc_info=True)
        if strict:
            raise
        return PermissionOutcome.FAILED

    if outcome is PermissionOutcome.UNSUPPORTED:
        logger.warning(f"Owner-only permissions not guaranteed for {path}: {reason}")
        if strict:
            raise PermissionUnsupported(path, reason)
    else:
        logger.debug(f"Restricted permissions on {path}")
    return outcome


def is_restricted(path: Union[str, Path]) -> Optional[bool]:
    """
    Check whether only the owner can access *path*.

    Returns:
        True or False, or None where the platform gives no way to tell
        (Windows without pywin32).
    Raises:
        IoFailure: the file cannot be inspected.
    """
    path = Path(path)
    if IS_WINDOWS:
        if not WINDOWS_SECURITY_AVAILABLE:
            return None
        return _windows_dacl_is_owner_only(path)

    try:
        mode = os.stat(path).st_mode
    except OSError as e:
        raise IoFailure(f"Failed to inspect permissions of {path}: {e}", path=path) from e
    return not (mode & _GROUP_OTHER_BITS)


def _restrict_posix(path: Path):
    try:
        os.chmod(path, config.OWNER_ONLY_MODE)
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except OSError as e:
        raise IoFailure(f"Failed to set permissions on {path}: {e}", path=path) from e

    # Some filesystems (FAT, certain network mounts) accept chmod and ignore it.
    if mode & _GROUP_OTHER_BITS:
        return PermissionOutcome.UNSUPPORTED, f"filesystem kept mode {oct(mode)}"
    return PermissionOutcome.ENFORCED, ""


def _current_user_sid():
    current_user_name = win32api.GetUserName()
    current_user_sid, _, _ = win32security.LookupAccountName(None, current_user_name)
    return current_user_sid


def _restrict_windows(path: Path):
    """
    Replace the file's DACL with one granting access to the current user
    only, removing inherited entries for everyone else.
    """
    if not WINDOWS_SECURITY_AVAILABLE:
        return PermissionOutcome.UNSUPPORTED, "pywin32 not available"

    try:
        dacl = win32security.ACL()
        dacl.AddAccessAllowedAce(
            win32security.ACL_REVISION,
            win32con.GENERIC_READ | win32con.GENERIC_WRITE,
            _current_user_sid()
        )

        file_handle = win32file.CreateFile(
            str(path),
            win32con.WRITE_DAC,
            win32file.FILE_SHARE_READ | win32file.FILE_SHARE_WRITE | win32file.FILE_SHARE_DELETE,
            None,
            win32con.OPEN_EXISTING,
            win32con.FILE_ATTRIBUTE_NORMAL,
            None
        )
        try:
            win32security.SetSecurityInfo(
                file_handle,
                win32security.SE_FILE_OBJECT,
                win32security.DACL_SECURITY_INFORMATION | win32security.PROTECTED_DACL_SECURITY_INFORMATION,
                None,
                None,
                dacl,
                None
            )
        finally:
            win32file.CloseHandle(file_handle)
    except win32api.error as e:
        if e.winerror == _ACCESS_DENIED:
            return PermissionOutcome.UNSUPPORTED, "access denied while hardening the ACL"
        raise IoFailure(f"Failed to set Windows file permissions for {path}: {e}", path=path) from e

    return PermissionOutcome.ENFORCED, ""


def _windows_dacl_is_owner_only(path: Path) -> bool:
    """True when every ACE in the file's DACL belongs to the current user."""
    try:
        descriptor = win32security.GetFileSecurity(str(path), win32security.DACL_SECURITY_INFORMATION)
        dacl = descriptor.GetSecurityDescriptorDacl()
        owner_sid = _current_user_sid()
    except win32api.error as e:
        raise IoFailure(f"Failed to inspect permissions of {path}: {e}", path=path) from e

    # A missing DACL grants everyone full access.
    if dacl is None:
        return False
    aces = [dacl.GetAce(i) for i in range(dacl.GetAceCount())]
    return bool(aces) and all(ace[-1] == owner_sid for ace in aces)
