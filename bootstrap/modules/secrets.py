"""
50-secrets: GPG key, pass store and migration of the plaintext
``secrets.env`` file into pass.
"""

import subprocess
from pathlib import Path
from typing import Optional

from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry
from common.command_utils import command_exists, run_command
from common.pass_store import PassStore, find_secret_key

SECRETS_FILE_NAME = "secrets.env"


@ModuleRegistry.register(
    "50-secrets",
    metadata={
        "description": "GPG and Pass setup",
        "dependencies": ["20-system-packages"],
        "idempotent": True,
        "rollback": True,  # partial: warns, restores only the plaintext file
    },
)
class SecretsModule(BaseModule):
    def __init__(self, settings, context, logger=None):
        super().__init__(settings, context, logger)
        self.store = PassStore(settings, logger=self.logger)

    @property
    def secrets_file(self) -> Path:
        return self.settings.xdg_config_home / SECRETS_FILE_NAME

    def validate(self) -> bool:
        for tool in ("gpg", "pass"):
            if not command_exists(tool):
                self.logger.error(
                    f"{self.symbols['error']} {tool} not available (installed by 20-system-packages)"
                )
                return False
        return True

    def execute(self) -> bool:
        key_id = self._ensure_gpg_key()
        if key_id is None:
            self.context.data["secrets_skipped"] = True
            self.logger.warning(
                f"{self.symbols['warning']} No GPG key available; pass setup skipped. "
                "Generate one with 'gpg --full-generate-key' and re-run this module."
            )
            return True

        if self.store.is_initialized():
            self.logger.info("pass already initialized")
        else:
            self.logger.info(f"Initializing pass with GPG key {key_id[:16]}...")
            if not self.store.init(key_id):
                return False
            self.logger.info(f"{self.symbols['success']} pass initialized")

        if self.settings.migrate_plaintext_secrets:
            self._migrate_plaintext_secrets()
        return True

    def verify(self) -> bool:
        if self.context.data.get("secrets_skipped"):
            self.logger.warning("pass setup was skipped; secrets are not managed by pass")
            return True
        if not self._key_id():
            self.logger.warning("No GPG secret keys found")
            return False
        if not self.store.is_initialized():
            self.logger.warning("pass is not initialized")
            return False
        return True

    def rollback(self) -> bool:
        self.logger.warning("GPG and pass rollback is limited; manual cleanup may be required:")
        self.logger.warning("  GPG keys: gpg --delete-secret-keys <KEY_ID>")
        self.logger.warning("  pass store: rm -rf ~/.password-store")
        backup_set = self.context.backup_set
        if not self.secrets_file.exists() and backup_set is not None:
            entry = backup_set.entry_for(self.secrets_file)
            if entry is not None and entry.existed:
                return self.restore_protected(self.secrets_file)
        return True

    def _key_id(self) -> Optional[str]:
        return self.settings.gpg_key_id or find_secret_key(self.settings, self.logger)

    def _ensure_gpg_key(self) -> Optional[str]:
        key_id = self._key_id()
        if key_id:
            self.logger.info(f"Using GPG key {key_id[:16]}...")
            return key_id

        self.logger.warning("No GPG secret key found for pass encryption")
        if self.settings.unattended:
            return None
        if not self.context.confirm("Generate a new GPG key now?", default=True):
            self.logger.info("To import an existing key: gpg --import /path/to/key.asc")
            return None
        try:
            # Interactive: gpg talks to the terminal directly.
            run_command(["gpg", "--full-generate-key"], self.settings, current_logger=self.logger)
        except subprocess.CalledProcessError:
            self.logger.warning("GPG key generation failed")
            return None
        return find_secret_key(self.settings, self.logger)

    def _migrate_plaintext_secrets(self) -> None:
        secrets_file = self.secrets_file
        if not secrets_file.is_file():
            self.logger.info("No plaintext secrets file found, skipping migration")
            return
        self.logger.info(f"Migrating {secrets_file} into pass")
        migrated, failed = self.store.migrate_env_file(secrets_file)
        if failed:
            self.logger.warning(f"{failed} secrets failed to migrate")
        if migrated:
            self.logger.info(f"{self.symbols['success']} Migrated {migrated} secrets to pass")
        if failed == 0 and not self.settings.unattended:
            self._offer_plaintext_cleanup(secrets_file)

    def _offer_plaintext_cleanup(self, secrets_file: Path) -> None:
        if not self.context.confirm(f"Remove plaintext secrets file {secrets_file}?", default=False):
            self.logger.info(f"Keeping plaintext secrets file: {secrets_file}")
            return
        self.context.protect(secrets_file)
        if command_exists("shred"):
            run_command(["shred", "-u", str(secrets_file)], self.settings, current_logger=self.logger)
        else:
            secrets_file.unlink()
        self.logger.info(f"Removed plaintext secrets file: {secrets_file}")
