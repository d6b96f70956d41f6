"""
30-chezmoi: fetch the dotfiles repository and point chezmoi at it.
"""

import os
import re
import socket
from pathlib import Path
from typing import List

from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry
from bootstrap.templates import (
    CHEZMOI_CONFIG_TEMPLATE,
    CHEZMOI_README,
    CHEZMOIIGNORE,
    GLOBAL_GITIGNORE_PATTERNS,
)
from common.atomic_utils import atomic_append, atomic_replace, write_atomic
from common.chezmoi_client import ChezmoiClient
from common.command_utils import command_exists
from common.git_utils import clone_or_pull, get_git_config, init_repo, set_git_config
from common.platform_utils import detect_distro, detect_distro_version

SOURCE_DIR_RE = r"^sourceDir\s*=.*$"
IMPORTED_FILES = [".bashrc", ".profile", ".bashrc.d"]
GLOBAL_GITIGNORE_NAME = ".gitignore_global"


@ModuleRegistry.register(
    "30-chezmoi",
    metadata={
        "description": "Chezmoi setup and configuration",
        "dependencies": ["00-prereqs", "20-system-packages"],
        "idempotent": True,
        "rollback": True,
    },
)
class ChezmoiModule(BaseModule):
    def __init__(self, settings, context, logger=None):
        super().__init__(settings, context, logger)
        self.client = ChezmoiClient(settings, logger=self.logger)

    def validate(self) -> bool:
        chezmoi_available = command_exists("chezmoi") or (
            self.settings.local_bin / "chezmoi"
        ).exists()
        if not chezmoi_available:
            self.logger.error(
                f"{self.symbols['error']} chezmoi not available (installed by 20-system-packages)"
            )
            return False
        if not command_exists("git"):
            self.logger.error(f"{self.symbols['error']} git not available")
            return False
        return True

    def execute(self) -> bool:
        settings = self.settings
        if not clone_or_pull(settings.repo_url, settings.repo_dir, settings, self.logger):
            return False
        self._write_config()

        name, email = self.context.git_identity()
        source = settings.chezmoi_source
        init_repo(source, settings, name=name, email=email, current_logger=self.logger)
        self._write_if_missing(source / ".chezmoiignore", CHEZMOIIGNORE)
        self._write_if_missing(source / "README.md", CHEZMOI_README)

        self._import_existing_dotfiles()
        if self.client.apply():
            self.logger.info(f"{self.symbols['success']} chezmoi configuration applied")
        else:
            self.logger.warning("chezmoi apply failed; continuing")
        self._setup_global_gitignore()
        return True

    def verify(self) -> bool:
        settings = self.settings
        if not (settings.repo_dir / ".git").is_dir():
            self.logger.warning(f"Repository not found or not a git repository: {settings.repo_dir}")
            return False
        if not settings.chezmoi_config.is_file():
            self.logger.warning(f"chezmoi config not found: {settings.chezmoi_config}")
            return False
        if not settings.chezmoi_source.is_dir():
            self.logger.warning(f"chezmoi source directory not found: {settings.chezmoi_source}")
            return False
        if not self._config_points_at_source():
            self.logger.warning("chezmoi sourceDir does not match the configured source")
            return False
        if not self.client.status():
            self.logger.warning("chezmoi status check failed")
            return False
        return True

    def rollback(self) -> bool:
        restored = self.restore_protected(
            self.settings.chezmoi_config,
            self.settings.home / GLOBAL_GITIGNORE_NAME,
            self.settings.home / ".gitconfig",
        )
        self.logger.warning("Repository and source files not removed (manual cleanup may be required)")
        self.logger.warning(f"Repository: {self.settings.repo_dir}")
        self.logger.warning(f"chezmoi source: {self.settings.chezmoi_source}")
        return restored

    def _config_points_at_source(self) -> bool:
        content = self.settings.chezmoi_config.read_text(encoding="utf-8")
        match = re.search(SOURCE_DIR_RE, content, flags=re.MULTILINE)
        if not match:
            return False
        value = match.group(0).split("=", 1)[1].strip().strip('"')
        return Path(value) == self.settings.chezmoi_source

    def _write_config(self) -> None:
        settings = self.settings
        config = settings.chezmoi_config
        source_line = f'sourceDir = "{settings.chezmoi_source}"'
        self.context.protect(config)

        if config.is_file() and "sourceDir" in config.read_text(encoding="utf-8"):
            if self._config_points_at_source():
                self.logger.info("chezmoi config already up to date")
            else:
                atomic_replace(config, SOURCE_DIR_RE, source_line.replace("\\", "\\\\"), self.logger)
                self.logger.info(f"Updated sourceDir in {config}")
            return

        name, email = self.context.git_identity()
        content = CHEZMOI_CONFIG_TEMPLATE.format(
            source_dir=settings.chezmoi_source,
            name=name,
            email=email,
            editor=os.environ.get("EDITOR", "vi"),
            hostname=socket.gethostname(),
            os_name=detect_distro().capitalize(),
            os_version=detect_distro_version(),
        )
        write_atomic(config, content, current_logger=self.logger)
        self.logger.info(f"{self.symbols['success']} chezmoi configuration created: {config}")

    def _write_if_missing(self, path: Path, content: str) -> None:
        if path.exists():
            self.logger.debug(f"{path.name} already exists")
            return
        write_atomic(path, content, current_logger=self.logger)
        self.logger.info(f"Created {path}")

    def _import_existing_dotfiles(self) -> None:
        for relative in IMPORTED_FILES:
            path = self.settings.home / relative
            if not path.exists():
                continue
            if self.client.add(path):
                self.logger.info(f"Imported into chezmoi: {path}")
            else:
                self.logger.warning(f"Failed to import into chezmoi: {path}")

    def _setup_global_gitignore(self) -> None:
        settings = self.settings
        gitignore = settings.home / GLOBAL_GITIGNORE_NAME
        self.context.protect(gitignore)

        existing: List[str] = []
        if gitignore.is_file():
            existing = gitignore.read_text(encoding="utf-8").splitlines()
        missing = [p for p in GLOBAL_GITIGNORE_PATTERNS if p not in existing]
        if missing:
            atomic_append(gitignore, "\n".join(missing), current_logger=self.logger)
            self.logger.info(f"Added {len(missing)} patterns to {gitignore}")

        if get_git_config("core.excludesFile", settings, self.logger) != str(gitignore):
            self.context.protect(settings.home / ".gitconfig")
            set_git_config("core.excludesFile", str(gitignore), settings, self.logger)
