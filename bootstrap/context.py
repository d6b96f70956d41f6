"""
The object handed to every module of one run.

It carries the settings, the run state, the run's backup set and a free-form
``data`` dict modules use to pass results forward (git identity, installed
packages and so on). Prompts go through here so unattended mode and tests
can answer them.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from bootstrap.backup_set import BackupSet
from bootstrap.run_state import RunState
from common.git_utils import default_identity, resolve_git_identity
from setup.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)

PromptFunc = Callable[[str], str]


class RunContext:
    def __init__(
        self,
        settings: BootstrapSettings,
        run_state: RunState,
        backup_set: Optional[BackupSet] = None,
        prompt: Optional[PromptFunc] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.run_state = run_state
        self.backup_set = backup_set
        self.prompt = prompt or input
        self.logger = logger or module_logger
        self.data: Dict[str, Any] = {}

    def ensure_backup_set(self) -> BackupSet:
        """The run's backup set, created and recorded in the state on first use."""
        if self.backup_set is not None:
            return self.backup_set
        if self.settings.dry_run:
            raise RuntimeError("backup sets are not created during a dry run")
        self.backup_set = BackupSet.create(
            self.settings.backup_root, self.settings.home, self.logger
        )
        self.run_state.set_backup_dir(self.backup_set.path)
        return self.backup_set

    def protect(self, path: Union[str, Path]) -> None:
        """Record ``path`` in the backup set before it is modified."""
        self.ensure_backup_set().add(path)

    def confirm(self, message: str, default: bool = False) -> bool:
        """
        Ask a yes/no question. Unattended runs and closed stdin get
        ``default``.
        """
        if self.settings.unattended:
            self.logger.debug(f"Unattended: answering '{message}' with {default}")
            return default
        hint = "Y/n" if default else "y/N"
        symbol = self.settings.symbols.get("info", "ℹ️")
        try:
            answer = self.prompt(f"   {symbol} {message} ({hint}): ").strip().lower()
        except EOFError:
            self.logger.warning(f"No input for '{message}'; using default")
            return default
        if not answer:
            return default
        return answer in ("y", "yes")

    def ask(self, message: str, default: str = "") -> str:
        """Free-text question; unattended runs and closed stdin get ``default``."""
        if self.settings.unattended:
            return default
        symbol = self.settings.symbols.get("info", "ℹ️")
        try:
            answer = self.prompt(f"   {symbol} {message}: ").strip()
        except EOFError:
            return default
        return answer or default

    def git_identity(self) -> Tuple[str, str]:
        """
        (name, email) for generated config. The prereqs module normally fills
        this in; a resumed run that skipped it resolves it here without
        prompting.
        """
        if not self.data.get("git_name") or not self.data.get("git_email"):
            name, email = resolve_git_identity(self.settings, self.logger)
            self.data.setdefault("git_name", name)
            self.data["git_email"] = self.data.get("git_email") or email or default_identity()[1]
        return self.data["git_name"], self.data["git_email"]
