"""
Backup sets: one timestamped snapshot per bootstrap run.

A set lives in ``<backup_root>/dotfiles-backup-YYYYmmdd-HHMMSS`` and holds
pre-modification copies of user files laid out relative to ``$HOME``, a JSON
manifest, a ``.backup_info`` summary and a generated ``rollback.sh`` that
restores the set without Python. ``dotfiles-backup-latest`` always points at
the newest set.

The manifest also records paths that did not exist when they were added, so
a restore removes files the run created.
"""

import datetime
import getpass
import logging
import os
import shlex
import shutil
import socket
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from common.atomic_utils import restore_path, write_atomic
from common.errors import BackupError, RollbackError
from setup.config_models import BACKUP_DIR_PREFIX, BACKUP_RETENTION_DEFAULT

module_logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

LATEST_LINK_NAME = f"{BACKUP_DIR_PREFIX}latest"
MANIFEST_NAME = "manifest.json"
INFO_NAME = ".backup_info"
ROLLBACK_SCRIPT_NAME = "rollback.sh"
SET_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
# Copies of paths outside $HOME are kept under this directory of the set.
OUTSIDE_HOME_DIR = "_root"


class BackupEntry(BaseModel):
    path: str  # absolute path of the original
    stored_as: str  # location of the copy, relative to the set directory
    existed: bool
    is_dir: bool = False


class BackupManifest(BaseModel):
    created_at: str
    home: str
    entries: List[BackupEntry] = Field(default_factory=list)


def _now_iso() -> str:
    return datetime.datetime.now().astimezone().isoformat(timespec="seconds")


class BackupSet:
    """A backup directory plus its manifest."""

    def __init__(
        self,
        path: PathLike,
        manifest: BackupManifest,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = Path(path)
        self.manifest = manifest
        self.logger = logger or module_logger

    @property
    def home(self) -> Path:
        return Path(self.manifest.home)

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def create(
        cls,
        backup_root: PathLike,
        home: PathLike,
        logger: Optional[logging.Logger] = None,
    ) -> "BackupSet":
        """
        Create a new, empty set under ``backup_root`` and point the latest
        link at it.

        Raises:
            BackupError: The directory could not be created.
        """
        logger_to_use = logger or module_logger
        root = Path(backup_root)
        stamp = datetime.datetime.now().strftime(SET_TIMESTAMP_FORMAT)
        candidate = root / f"{BACKUP_DIR_PREFIX}{stamp}"
        counter = 1
        while candidate.exists():
            counter += 1
            candidate = root / f"{BACKUP_DIR_PREFIX}{stamp}-{counter}"
        try:
            root.mkdir(parents=True, exist_ok=True)
            candidate.mkdir(mode=0o700)
        except OSError as e:
            raise BackupError(f"Cannot create backup directory {candidate}: {e}") from e

        backup_set = cls(
            candidate,
            BackupManifest(created_at=_now_iso(), home=str(Path(home))),
            logger_to_use,
        )
        backup_set._save()
        backup_set._write_info()
        backup_set._update_latest_link()
        logger_to_use.info(f"Created backup set: {candidate}")
        return backup_set

    @classmethod
    def open(
        cls, path: PathLike, logger: Optional[logging.Logger] = None
    ) -> "BackupSet":
        """
        Load an existing set.

        Raises:
            BackupError: ``path`` has no readable manifest.
        """
        set_dir = Path(path)
        manifest_file = set_dir / MANIFEST_NAME
        try:
            manifest = BackupManifest.model_validate_json(
                manifest_file.read_text(encoding="utf-8")
            )
        except (OSError, ValueError) as e:
            raise BackupError(f"No usable manifest in {set_dir}: {e}") from e
        return cls(set_dir, manifest, logger)

    # --- contents -------------------------------------------------------

    def _stored_name(self, target: Path) -> str:
        try:
            return str(target.relative_to(self.home))
        except ValueError:
            return str(Path(OUTSIDE_HOME_DIR) / str(target).lstrip(os.sep))

    def entry_for(self, path: PathLike) -> Optional[BackupEntry]:
        wanted = str(Path(path).expanduser().absolute())
        for entry in self.manifest.entries:
            if entry.path == wanted:
                return entry
        return None

    @property
    def entries(self) -> List[BackupEntry]:
        return list(self.manifest.entries)

    def add(self, path: PathLike) -> BackupEntry:
        """
        Record ``path`` before it is modified.

        Only the first call for a path takes a copy; later calls return the
        existing entry so the set keeps the pre-run content.

        Raises:
            BackupError: The copy failed.
        """
        target = Path(path).expanduser().absolute()
        existing = self.entry_for(target)
        if existing is not None:
            return existing

        exists = target.exists() or target.is_symlink()
        entry = BackupEntry(
            path=str(target),
            stored_as=self._stored_name(target),
            existed=exists,
            is_dir=exists and target.is_dir() and not target.is_symlink(),
        )
        if exists:
            copy_path = self.path / entry.stored_as
            try:
                copy_path.parent.mkdir(parents=True, exist_ok=True)
                if entry.is_dir:
                    shutil.copytree(target, copy_path, symlinks=True)
                else:
                    shutil.copy2(target, copy_path, follow_symlinks=False)
            except OSError as e:
                raise BackupError(f"Failed to back up {target}: {e}") from e
            self.logger.debug(f"  backed up: {target}")
        else:
            self.logger.debug(f"  recorded absent path: {target}")

        self.manifest.entries.append(entry)
        self._save()
        return entry

    def add_many(self, paths: List[PathLike]) -> int:
        """Add every path; returns how many of them existed."""
        return sum(1 for path in paths if self.add(path).existed)

    def restore(self, paths: Optional[List[PathLike]] = None) -> List[str]:
        """
        Put the recorded paths back the way they were, newest entry first.

        Args:
            paths: Restrict the restore to these paths; all entries when None.

        Returns:
            The restored or removed paths.

        Raises:
            RollbackError: At least one path could not be restored. The
                others are still processed.
        """
        selected = None
        if paths is not None:
            selected = {str(Path(p).expanduser().absolute()) for p in paths}

        done: List[str] = []
        failed: List[str] = []
        for entry in reversed(self.manifest.entries):
            if selected is not None and entry.path not in selected:
                continue
            target = Path(entry.path)
            try:
                if entry.existed:
                    restore_path(self.path / entry.stored_as, target, self.logger)
                    self.logger.info(f"  restored: {target}")
                elif target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                    self.logger.info(f"  removed: {target}")
                elif target.exists() or target.is_symlink():
                    target.unlink()
                    self.logger.info(f"  removed: {target}")
                else:
                    continue
                done.append(entry.path)
            except OSError as e:
                self.logger.warning(f"  failed to restore {target}: {e}")
                failed.append(entry.path)

        if failed:
            raise RollbackError(
                f"{len(failed)} path(s) could not be restored from {self.path}: "
                + ", ".join(failed)
            )
        return done

    # --- files inside the set --------------------------------------------

    def _save(self) -> None:
        write_atomic(
            self.path / MANIFEST_NAME,
            self.manifest.model_dump_json(indent=2) + "\n",
            mode=0o600,
            current_logger=self.logger,
        )
        self.write_rollback_script()

    def _write_info(self) -> None:
        lines = [
            f"BACKUP_TIMESTAMP={self.name[len(BACKUP_DIR_PREFIX):]}",
            f"BACKUP_DIR={self.path}",
            f"BACKUP_MANIFEST={self.path / MANIFEST_NAME}",
            f"CREATED_BY_USER={getpass.getuser()}",
            f"CREATED_ON_HOST={socket.gethostname()}",
            f"CREATED_AT={self.manifest.created_at}",
        ]
        write_atomic(self.path / INFO_NAME, "\n".join(lines) + "\n", mode=0o600)

    def write_rollback_script(self) -> Path:
        """Write ``rollback.sh``, a standalone restore of this set."""
        lines = [
            "#!/usr/bin/env bash",
            "# Generated by machine-rites: restores the files captured in this backup set.",
            "set -euo pipefail",
            "",
            'BACKUP_DIR="$(cd "$(dirname "${BASH_SOURCE[0]}")" && pwd)"',
            'echo "[rollback] Restoring from $BACKUP_DIR"',
            "",
            "restore() {",
            '    rm -rf -- "$2"',
            '    mkdir -p -- "$(dirname -- "$2")"',
            '    cp -a -- "$BACKUP_DIR/$1" "$2"',
            '    echo "  restored: $2"',
            "}",
            "",
            "remove() {",
            '    rm -rf -- "$1"',
            '    echo "  removed: $1"',
            "}",
            "",
        ]
        for entry in reversed(self.manifest.entries):
            if entry.existed:
                lines.append(
                    f"restore {shlex.quote(entry.stored_as)} {shlex.quote(entry.path)}"
                )
            else:
                lines.append(f"remove {shlex.quote(entry.path)}")
        lines += [
            "",
            "echo \"Rollback successful. Run 'exec bash -l' to reload shell.\"",
        ]
        script = self.path / ROLLBACK_SCRIPT_NAME
        write_atomic(script, "\n".join(lines) + "\n", mode=0o700)
        return script

    def _update_latest_link(self) -> None:
        update_latest_link(self.path.parent, self.path, self.logger)

    # --- sets under a backup root ----------------------------------------

    @staticmethod
    def list_sets(backup_root: PathLike) -> List[Path]:
        """Backup set directories under ``backup_root``, oldest first."""
        root = Path(backup_root)
        if not root.is_dir():
            return []
        return sorted(
            p
            for p in root.glob(f"{BACKUP_DIR_PREFIX}*")
            if p.name != LATEST_LINK_NAME and p.is_dir() and not p.is_symlink()
        )

    @staticmethod
    def latest(backup_root: PathLike) -> Optional[Path]:
        sets = BackupSet.list_sets(backup_root)
        return sets[-1] if sets else None

    @staticmethod
    def prune(
        backup_root: PathLike,
        keep: int = BACKUP_RETENTION_DEFAULT,
        logger: Optional[logging.Logger] = None,
    ) -> List[Path]:
        """
        Delete all but the newest ``keep`` sets.

        Returns:
            The removed directories.
        """
        logger_to_use = logger or module_logger
        if keep < 1:
            raise ValueError("keep must be at least 1")
        sets = BackupSet.list_sets(backup_root)
        removed: List[Path] = []
        for old in sets[: max(len(sets) - keep, 0)]:
            shutil.rmtree(old)
            logger_to_use.info(f"Removed old backup: {old.name}")
            removed.append(old)
        newest = BackupSet.latest(backup_root)
        if removed and newest is not None:
            update_latest_link(Path(backup_root), newest, logger_to_use)
        return removed


def update_latest_link(
    backup_root: Path, target: Path, logger: Optional[logging.Logger] = None
) -> None:
    """Point ``<backup_root>/dotfiles-backup-latest`` at ``target``."""
    logger_to_use = logger or module_logger
    link = backup_root / LATEST_LINK_NAME
    tmp_link = backup_root / f".{LATEST_LINK_NAME}.tmp.{os.getpid()}"
    try:
        if tmp_link.is_symlink():
            tmp_link.unlink()
        os.symlink(str(target), str(tmp_link))
        os.replace(str(tmp_link), str(link))
    except OSError as e:
        logger_to_use.warning(f"Could not update {link}: {e}")
        if tmp_link.is_symlink():
            tmp_link.unlink()
