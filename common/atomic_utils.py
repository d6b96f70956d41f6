# common/atomic_utils.py
# -*- coding: utf-8 -*-
"""
Crash-safe file primitives used by the bootstrap modules.

``write_atomic`` writes into a temporary file next to the target, fsyncs it
and renames it over the target, so readers see either the old or the new
content and never a partial file. The temporary file is removed on every
failure path, including KeyboardInterrupt.

``backup_file``/``restore_backup`` keep timestamped single-file copies in a
``backups`` directory next to the file unless told otherwise.
"""

import datetime
import glob
import logging
import os
import re
import shutil
import stat
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Union

from common.errors import AtomicWriteError, BackupError, DirectoryNotWritableError

module_logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TEMP_MARKER = ".tmp."
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"
_BACKUP_SUFFIX_RE = re.compile(r"^\d{8}-\d{6}-\d{6}(-\d+)?$")
STALE_TEMP_AGE_SECONDS = 3600


def _fsync_directory(directory: Path) -> None:
    """Persist the rename itself. Not every file system supports this."""
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _ensure_writable_directory(directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        raise DirectoryNotWritableError(
            f"Cannot create directory {directory}: {e}"
        ) from e
    if not os.access(directory, os.W_OK | os.X_OK):
        raise DirectoryNotWritableError(f"Directory is not writable: {directory}")


def write_atomic(
    path: PathLike,
    content: Union[str, bytes],
    mode: Optional[int] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Atomically replace ``path`` with ``content``.

    Args:
        path: Target file. Missing parent directories are created.
        content: Text (written as UTF-8) or bytes.
        mode: Permission bits for the result. Defaults to the existing file's
            mode, or the umask default for a new file.
        current_logger: Logger to use; the module logger when omitted.

    Returns:
        The target path.

    Raises:
        DirectoryNotWritableError: The parent directory cannot be created or
            written to.
        AtomicWriteError: Writing or renaming the temporary file failed. The
            target keeps its previous content.
    """
    logger_to_use = current_logger if current_logger else module_logger
    target = Path(path)
    directory = target.parent
    _ensure_writable_directory(directory)

    if mode is None and target.exists():
        mode = stat.S_IMODE(target.stat().st_mode)
    data = content.encode("utf-8") if isinstance(content, str) else content

    tmp_name: Optional[str] = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}{TEMP_MARKER}", dir=str(directory)
        )
        with os.fdopen(fd, "wb") as tmp_file:
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        else:
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(tmp_name, 0o666 & ~umask)
        os.replace(tmp_name, target)
        tmp_name = None
        _fsync_directory(directory)
    except OSError as e:
        raise AtomicWriteError(f"Atomic write of {target} failed: {e}") from e
    finally:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger_to_use.debug(f"Wrote {target} atomically ({len(data)} bytes)")
    return target


def atomic_append(
    path: PathLike,
    text: str,
    current_logger: Optional[logging.Logger] = None,
) -> Path:
    """Append ``text`` (newline-terminated) through ``write_atomic``."""
    target = Path(path)
    existing = target.read_text(encoding="utf-8") if target.exists() else ""
    if existing and not existing.endswith("\n"):
        existing += "\n"
    if not text.endswith("\n"):
        text += "\n"
    return write_atomic(target, existing + text, current_logger=current_logger)


def atomic_replace(
    path: PathLike,
    pattern: str,
    replacement: str,
    current_logger: Optional[logging.Logger] = None,
) -> int:
    """
    Regex-substitute inside ``path`` through ``write_atomic``.

    Returns the number of substitutions; the file is left untouched when
    there are none.
    """
    target = Path(path)
    if not target.is_file():
        raise FileNotFoundError(f"atomic_replace: {target} does not exist")
    original = target.read_text(encoding="utf-8")
    updated, count = re.subn(pattern, replacement, original, flags=re.MULTILINE)
    if count:
        write_atomic(target, updated, current_logger=current_logger)
    return count


def cleanup_temp_files(
    directory: PathLike,
    max_age_seconds: int = STALE_TEMP_AGE_SECONDS,
    current_logger: Optional[logging.Logger] = None,
) -> int:
    """
    Remove temporary files left by interrupted ``write_atomic`` calls.

    Only files carrying the ``.tmp.`` marker and older than ``max_age_seconds``
    are removed. Returns how many were deleted.
    """
    logger_to_use = current_logger if current_logger else module_logger
    root = Path(directory)
    if not root.is_dir():
        return 0
    cutoff = time.time() - max_age_seconds
    removed = 0
    for candidate in root.glob(f".*{TEMP_MARKER}*"):
        try:
            if candidate.is_file() and candidate.stat().st_mtime <= cutoff:
                candidate.unlink()
                removed += 1
        except FileNotFoundError:
            continue
    if removed:
        logger_to_use.info(f"Cleaned up {removed} temporary files in {root}")
    return removed


def _default_backup_dir(source: Path) -> Path:
    return source.parent / "backups"


def backup_file(
    path: PathLike,
    backup_dir: Optional[PathLike] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Copy ``path`` to ``<backup_dir>/<name>.<timestamp>``.

    Directories are copied recursively, symlinks are preserved as links.

    Returns:
        The path of the new backup.

    Raises:
        BackupError: The source does not exist or the copy failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    source = Path(path)
    if not source.exists() and not source.is_symlink():
        raise BackupError(f"Cannot back up {source}: it does not exist")

    dest_dir = Path(backup_dir) if backup_dir else _default_backup_dir(source)
    timestamp = datetime.datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
    dest = dest_dir / f"{source.name}.{timestamp}"
    counter = 1
    while dest.exists() or dest.is_symlink():
        dest = dest_dir / f"{source.name}.{timestamp}-{counter}"
        counter += 1

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        if source.is_dir() and not source.is_symlink():
            shutil.copytree(source, dest, symlinks=True)
        else:
            shutil.copy2(source, dest, follow_symlinks=False)
    except OSError as e:
        raise BackupError(f"Backup of {source} failed: {e}") from e

    logger_to_use.debug(f"Backed up {source} -> {dest}")
    return dest


def list_backups(
    path: PathLike, backup_dir: Optional[PathLike] = None
) -> List[Path]:
    """Backups of ``path`` in ``backup_dir``, oldest first."""
    source = Path(path)
    dest_dir = Path(backup_dir) if backup_dir else _default_backup_dir(source)
    if not dest_dir.is_dir():
        return []
    prefix = f"{source.name}."
    found = [
        candidate
        for candidate in dest_dir.glob(f"{glob.escape(source.name)}.*")
        if _BACKUP_SUFFIX_RE.match(candidate.name[len(prefix):])
    ]
    return sorted(found, key=lambda p: p.name[len(prefix):])


def restore_path(
    backup: PathLike,
    target: PathLike,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Put the copy at ``backup`` back in place at ``target``.

    Files and symlinks are staged next to the target and renamed over it.
    Directories are staged as a sibling copy and swapped in.
    """
    logger_to_use = current_logger if current_logger else module_logger
    source = Path(backup)
    dest = Path(target)
    _ensure_writable_directory(dest.parent)

    if source.is_dir() and not source.is_symlink():
        staging = Path(
            tempfile.mkdtemp(prefix=f".{dest.name}{TEMP_MARKER}", dir=str(dest.parent))
        )
        staged = staging / dest.name
        try:
            shutil.copytree(source, staged, symlinks=True)
            if dest.is_dir() and not dest.is_symlink():
                shutil.rmtree(dest)
            elif dest.exists() or dest.is_symlink():
                dest.unlink()
            os.replace(staged, dest)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
    else:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{dest.name}{TEMP_MARKER}", dir=str(dest.parent)
        )
        os.close(fd)
        try:
            os.unlink(tmp_name)
            shutil.copy2(source, tmp_name, follow_symlinks=False)
            if dest.is_dir() and not dest.is_symlink():
                shutil.rmtree(dest)
            os.replace(tmp_name, dest)
            tmp_name = ""
        finally:
            if tmp_name and (os.path.exists(tmp_name) or os.path.islink(tmp_name)):
                os.unlink(tmp_name)
    logger_to_use.debug(f"Restored {dest} from {source}")


def restore_backup(
    path: PathLike,
    backup_dir: Optional[PathLike] = None,
    current_logger: Optional[logging.Logger] = None,
) -> Path:
    """
    Restore the most recent backup of ``path``.

    Returns:
        The backup that was restored.

    Raises:
        BackupError: No backup exists or the restore failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    backups = list_backups(path, backup_dir)
    if not backups:
        raise BackupError(f"No backup found for {path}")
    latest = backups[-1]
    try:
        restore_path(latest, path, current_logger=logger_to_use)
    except OSError as e:
        raise BackupError(f"Restoring {path} from {latest} failed: {e}") from e
    logger_to_use.info(f"Restored {path} from backup {latest}")
    return latest
