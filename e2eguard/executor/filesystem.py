"""Artifact directory creation and permission checks."""

from __future__ import annotations

import errno
import logging
import os
import stat
from enum import Enum
from pathlib import Path

from e2eguard.errors import FilesystemError
from e2eguard.models.artifacts import PermissionResult
from e2eguard.models.environment import EnvironmentInfo, OperatingSystem

logger = logging.getLogger(__name__)


class FilesystemErrorCode(str, Enum):
    PATH_NOT_FOUND = "PATH_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    PATH_NOT_DIRECTORY = "PATH_NOT_DIRECTORY"
    WRITE_ERROR = "WRITE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


def _code_for(error: OSError) -> FilesystemErrorCode:
    if error.errno == errno.ENOENT:
        return FilesystemErrorCode.PATH_NOT_FOUND
    if error.errno in (errno.EACCES, errno.EPERM, errno.EROFS):
        return FilesystemErrorCode.PERMISSION_DENIED
    if error.errno in (errno.ENOTDIR, errno.EEXIST):
        return FilesystemErrorCode.PATH_NOT_DIRECTORY
    return FilesystemErrorCode.UNKNOWN_ERROR


def check_permissions(path: str | Path) -> PermissionResult:
    """Describe what this process may do with ``path``. Never raises."""
    abs_path = Path(path).absolute()
    result = PermissionResult(path=str(abs_path))
    if not abs_path.exists():
        result.error = "Path does not exist"
        return result
    try:
        result.is_directory = abs_path.is_dir()
        result.is_file = abs_path.is_file()
        result.readable = os.access(abs_path, os.R_OK)
        result.writable = os.access(abs_path, os.W_OK)
        result.executable = os.access(abs_path, os.X_OK)
    except OSError as e:
        result.error = str(e)
        return result
    # A directory without search permission cannot be entered.
    result.has_permission = result.readable and result.writable and (
        result.executable or not result.is_directory
    )
    return result


def ensure_directory_exists(path: str | Path, mode: int = 0o755) -> Path:
    """Create ``path`` (and parents) if needed and make sure it is usable.

    Safe when several workers race to create the same directory: an
    existing directory counts as success.
    """
    abs_path = Path(path).absolute()
    try:
        abs_path.mkdir(parents=True, exist_ok=True, mode=mode)
    except FileExistsError as e:
        raise FilesystemError(
            f"Path exists but is not a directory: {abs_path}",
            code=FilesystemErrorCode.PATH_NOT_DIRECTORY.value,
            path=str(abs_path),
            operation="ensure_directory_exists",
        ) from e
    except OSError as e:
        raise FilesystemError(
            f"Could not create directory {abs_path}: {e.strerror or e}",
            code=_code_for(e).value,
            path=str(abs_path),
            operation="ensure_directory_exists",
        ) from e

    permissions = check_permissions(abs_path)
    if not permissions.has_permission:
        try:
            abs_path.chmod(mode | stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)
        except OSError as e:
            raise FilesystemError(
                f"Directory exists but has insufficient permissions: {abs_path}",
                code=FilesystemErrorCode.PERMISSION_DENIED.value,
                path=str(abs_path),
                operation="ensure_directory_exists",
            ) from e
    return abs_path


def write_data_to_file(path: str | Path, data: str | bytes) -> Path:
    """Write ``data`` to ``path``, creating the parent directory first."""
    abs_path = Path(path).absolute()
    ensure_directory_exists(abs_path.parent)
    try:
        if isinstance(data, bytes):
            abs_path.write_bytes(data)
        else:
            abs_path.write_text(data, encoding="utf-8")
    except OSError as e:
        code = _code_for(e)
        if code is FilesystemErrorCode.UNKNOWN_ERROR:
            code = FilesystemErrorCode.WRITE_ERROR
        raise FilesystemError(
            f"Failed to write file {abs_path}: {e.strerror or e}",
            code=code.value,
            path=str(abs_path),
            operation="write_data_to_file",
        ) from e
    return abs_path


def validate_artifact_structure(
    root_dir: str | Path, required_dirs: list[str], auto_fix: bool = True
) -> list[PermissionResult]:
    """Check the artifact root and its subdirectories, creating them if asked.

    Problems are logged and reported in the results; nothing is raised.
    """
    root = Path(root_dir)
    results: list[PermissionResult] = []
    for target in [root] + [root / name for name in required_dirs]:
        result = check_permissions(target)
        if auto_fix and not result.has_permission:
            try:
                ensure_directory_exists(target)
                result = check_permissions(target)
            except FilesystemError as e:
                logger.warning("Artifact directory unusable: %s", e)
                result.error = e.message
        if not result.has_permission:
            logger.warning(
                "Insufficient permissions on %s (r=%s w=%s x=%s)",
                result.path, result.readable, result.writable, result.executable,
            )
        results.append(result)
    return results


def apply_ci_filesystem_optimizations(root_dir: str | Path, env: EnvironmentInfo) -> None:
    """Open up artifact root permissions on Linux CI runners.

    Runner users and upload steps often differ; failures are only logged.
    """
    if not env.is_ci:
        return
    try:
        root = ensure_directory_exists(root_dir)
        if env.os is OperatingSystem.LINUX:
            root.chmod(0o777)
    except (FilesystemError, OSError) as e:
        logger.warning("Failed to apply CI filesystem optimizations to %s: %s", root_dir, e)
