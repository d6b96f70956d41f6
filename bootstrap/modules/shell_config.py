"""
40-shell-config: the modular bash setup (``~/.bashrc`` sourcing
``~/.bashrc.d/*.sh``).
"""

import os
from pathlib import Path
from typing import Dict

from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry
from bootstrap.templates import (
    BASHRC,
    BASHRC_D_SNIPPETS,
    LOCAL,
    LOCAL_SNIPPET_NAME,
    PROFILE,
)
from common.atomic_utils import write_atomic
from common.chezmoi_client import ChezmoiClient
from common.command_utils import command_succeeds

BASHRC_D_NAME = ".bashrc.d"
SNIPPET_MODE = 0o644


@ModuleRegistry.register(
    "40-shell-config",
    metadata={
        "description": "Shell configuration",
        "dependencies": ["30-chezmoi"],
        "idempotent": True,
        "rollback": True,
    },
)
class ShellConfigModule(BaseModule):
    @property
    def bashrc_d(self) -> Path:
        return self.settings.home / BASHRC_D_NAME

    def managed_files(self) -> Dict[Path, str]:
        """Files this module owns, with their content."""
        home = self.settings.home
        files = {home / ".bashrc": BASHRC, home / ".profile": PROFILE}
        for name, content in BASHRC_D_SNIPPETS.items():
            files[self.bashrc_d / name] = content
        return files

    def validate(self) -> bool:
        if not os.access(self.settings.home, os.W_OK):
            self.logger.error(
                f"{self.symbols['error']} HOME directory is not writable: {self.settings.home}"
            )
            return False
        return True

    def execute(self) -> bool:
        self.context.protect(self.bashrc_d)
        self.bashrc_d.mkdir(parents=True, exist_ok=True)

        for path, content in self.managed_files().items():
            self.context.protect(path)
            write_atomic(path, content, mode=SNIPPET_MODE, current_logger=self.logger)
            self.logger.info(f"  wrote {path}")

        # Machine-local overrides are the user's; only create the placeholder.
        local = self.bashrc_d / LOCAL_SNIPPET_NAME
        if not local.exists():
            self.context.protect(local)
            write_atomic(local, LOCAL, mode=SNIPPET_MODE, current_logger=self.logger)
            self.logger.info(f"  wrote {local}")

        client = ChezmoiClient(self.settings, logger=self.logger)
        for path in (self.settings.home / ".bashrc", self.settings.home / ".profile", self.bashrc_d):
            if not client.add(path):
                self.logger.warning(f"Could not add {path} to chezmoi")
        return True

    def verify(self) -> bool:
        required = list(self.managed_files()) + [self.bashrc_d / LOCAL_SNIPPET_NAME]
        for path in required:
            if not path.is_file():
                self.logger.warning(f"Required shell config file missing: {path}")
                return False
        for path in required:
            if not command_succeeds(["bash", "-n", str(path)], self.settings, self.logger):
                self.logger.warning(f"Syntax error in shell config: {path}")
                return False
        if BASHRC_D_NAME not in (self.settings.home / ".bashrc").read_text(encoding="utf-8"):
            self.logger.warning("Main .bashrc does not source the .bashrc.d snippets")
            return False
        return True

    def rollback(self) -> bool:
        self.logger.info(f"Restoring shell configuration for {self.module_id}")
        paths = list(self.managed_files()) + [self.bashrc_d / LOCAL_SNIPPET_NAME, self.bashrc_d]
        return self.restore_protected(*paths)
