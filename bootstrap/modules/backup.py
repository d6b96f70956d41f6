"""
10-backup: snapshot the user's dotfiles into the run's backup set before
anything else touches them.
"""

import os
import shutil
from pathlib import Path
from typing import List

from bootstrap.backup_set import MANIFEST_NAME, ROLLBACK_SCRIPT_NAME
from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry

MIN_FREE_BYTES = 100 * 1024 * 1024


@ModuleRegistry.register(
    "10-backup",
    metadata={
        "description": "Backup creation and management",
        "dependencies": [],
        "idempotent": True,
        "rollback": True,
    },
)
class BackupModule(BaseModule):
    """
    Records every configured target in the backup set, including targets
    that do not exist yet, so rolling back removes files the run created.
    """

    def targets(self) -> List[Path]:
        settings = self.settings
        paths = [settings.home / relative for relative in settings.backup_targets]
        # Relocated config locations are captured too.
        paths += [
            settings.xdg_config_home / "secrets.env",
            settings.xdg_config_home / "starship.toml",
            settings.chezmoi_config,
        ]
        unique: List[Path] = []
        for path in paths:
            if path not in unique:
                unique.append(path)
        return unique

    def validate(self) -> bool:
        home = self.settings.home
        if not os.access(home, os.W_OK):
            self.logger.error(f"{self.symbols['error']} HOME directory is not writable: {home}")
            return False
        backup_root = self.settings.backup_root
        checked_path = backup_root if backup_root.exists() else home
        free = shutil.disk_usage(checked_path).free
        if free < MIN_FREE_BYTES:
            self.logger.warning(
                f"{self.symbols['warning']} Low disk space for backups: {free // 1024}KB available"
            )
            if not self.settings.unattended:
                return self.context.confirm("Continue with backup anyway?", default=False)
        return True

    def execute(self) -> bool:
        backup_set = self.context.ensure_backup_set()
        self.logger.info(f"Backing up dotfiles into {backup_set.path}")
        existing = backup_set.add_many(self.targets())
        self.logger.info(f"Backed up {existing} items")
        return True

    def verify(self) -> bool:
        backup_set = self.context.backup_set
        if backup_set is None or not backup_set.path.is_dir():
            self.logger.warning("Backup directory not found")
            return False
        if not (backup_set.path / MANIFEST_NAME).is_file():
            self.logger.warning(f"Backup manifest not found in {backup_set.path}")
            return False
        if not os.access(backup_set.path / ROLLBACK_SCRIPT_NAME, os.X_OK):
            self.logger.warning("Rollback script not found or not executable")
            return False
        missing = [
            entry.path
            for entry in backup_set.entries
            if entry.existed and not (backup_set.path / entry.stored_as).exists()
        ]
        if missing:
            self.logger.warning(f"Backup verification failed: {len(missing)} files missing")
            return False
        return True

    def rollback(self) -> bool:
        self.logger.info(f"Restoring dotfiles for {self.module_id}")
        return self.restore_protected()
