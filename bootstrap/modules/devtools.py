"""
60-devtools: developer tool configuration (starship, gitleaks, pre-commit,
bash completions). Skip it with ``--skip-devtools`` or ``SKIP_DEVTOOLS=1``.
"""

import os
import re
from pathlib import Path
from typing import Dict

from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry
from bootstrap.templates import (
    COMPLETIONS,
    COMPLETIONS_SNIPPET_NAME,
    GITLEAKS_CONFIG,
    PRE_COMMIT_CONFIG,
    STARSHIP_CONFIG,
)
from common.atomic_utils import atomic_replace, write_atomic
from common.command_utils import command_exists, command_succeeds

UPPERCASE_STASHED_RE = r"^STASHED"


@ModuleRegistry.register(
    "60-devtools",
    metadata={
        "description": "Optional developer tools",
        "dependencies": ["20-system-packages", "30-chezmoi"],
        "idempotent": True,
        "rollback": True,
    },
)
class DevtoolsModule(BaseModule):
    @property
    def starship_config(self) -> Path:
        return self.settings.xdg_config_home / "starship.toml"

    @property
    def completions_snippet(self) -> Path:
        return self.settings.home / ".bashrc.d" / COMPLETIONS_SNIPPET_NAME

    def repo_files(self) -> Dict[Path, str]:
        repo_dir = self.settings.repo_dir
        return {
            repo_dir / ".gitleaks.toml": GITLEAKS_CONFIG,
            repo_dir / ".pre-commit-config.yaml": PRE_COMMIT_CONFIG,
        }

    def validate(self) -> bool:
        if not self.settings.repo_dir.is_dir():
            self.logger.warning(f"Repository directory not found: {self.settings.repo_dir}")
            self.logger.warning("Repository tooling will be skipped")
        if not os.access(self.settings.xdg_config_home, os.W_OK):
            self.logger.error(
                f"{self.symbols['error']} Config directory is not writable: {self.settings.xdg_config_home}"
            )
            return False
        return True

    def execute(self) -> bool:
        self._setup_starship_config()
        if self.settings.repo_dir.is_dir():
            for path, content in self.repo_files().items():
                self._write_if_missing(path, content)
            self._install_pre_commit_hooks()

        self.context.protect(self.completions_snippet)
        write_atomic(self.completions_snippet, COMPLETIONS, mode=0o644, current_logger=self.logger)
        self.logger.info(f"Wrote {self.completions_snippet}")
        return True

    def verify(self) -> bool:
        problems = 0
        if self.settings.repo_dir.is_dir():
            for path in self.repo_files():
                if not path.is_file():
                    self.logger.warning(f"Configuration not found: {path}")
                    problems += 1
        if not self.starship_config.is_file():
            self.logger.warning(f"Starship configuration not found: {self.starship_config}")
            problems += 1
        if not self.completions_snippet.is_file():
            self.logger.warning(f"Completions snippet not found: {self.completions_snippet}")
            problems += 1
        if problems:
            self.logger.warning(f"Developer tools verification failed: {problems} issues found")
            return False
        return True

    def rollback(self) -> bool:
        self.logger.info(f"Restoring developer tool configuration for {self.module_id}")
        return self.restore_protected(
            self.starship_config, self.completions_snippet, *self.repo_files()
        )

    def _write_if_missing(self, path: Path, content: str) -> None:
        if path.exists():
            self.logger.info(f"{path.name} already exists")
            return
        self.context.protect(path)
        write_atomic(path, content, current_logger=self.logger)
        self.logger.info(f"Created {path}")

    def _setup_starship_config(self) -> None:
        config = self.starship_config
        if not config.is_file():
            self._write_if_missing(config, STARSHIP_CONFIG)
            return
        self.logger.info(f"Starship configuration already exists: {config}")
        if re.search(UPPERCASE_STASHED_RE, config.read_text(encoding="utf-8"), flags=re.MULTILINE):
            self.context.protect(config)
            atomic_replace(config, UPPERCASE_STASHED_RE, "stashed", self.logger)
            self.logger.info("Fixed uppercase STASHED key in starship.toml")

    def _install_pre_commit_hooks(self) -> None:
        if not command_exists("pre-commit") and not (self.settings.local_bin / "pre-commit").exists():
            self.logger.info("pre-commit not available, skipping hook installation")
            return
        if not (self.settings.repo_dir / ".git").exists():
            self.logger.info("Repository is not a git checkout, skipping hook installation")
            return
        executable = "pre-commit" if command_exists("pre-commit") else str(self.settings.local_bin / "pre-commit")
        if command_succeeds([executable, "install"], self.settings, self.logger, cwd=str(self.settings.repo_dir)):
            self.logger.info(f"{self.symbols['success']} pre-commit hooks installed")
        else:
            self.logger.warning("pre-commit hook installation failed")
