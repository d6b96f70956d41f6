# setup/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for bootstrap configuration.

This module defines the structured settings for the bootstrap run,
including defaults, type annotations, and descriptions. Paths that depend
on the target user's home directory are derived after validation so that a
single ``home`` override relocates everything (handy for tests and for
bootstrapping another account).
"""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.validation import (
    is_safe_string,
    validate_email,
    validate_git_repo,
    validate_shell_identifier,
)

# --- Default Static Values (can be overridden by config file/env/cli) ---
LOG_PREFIX_DEFAULT: str = "[MACHINE-RITES]"
REPO_URL_DEFAULT: str = "https://github.com/williamzujkowski/machine-rites"
PASS_PREFIX_DEFAULT: str = "personal"
BACKUP_RETENTION_DEFAULT: int = 5
BACKUP_DIR_PREFIX: str = "dotfiles-backup-"

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
}

ESSENTIAL_PACKAGES_DEFAULT: List[str] = [
    "curl",
    "git",
    "gnupg",
    "pass",
    "age",
    "bash-completion",
    "openssh-client",
    "wget",
    "unzip",
    "tar",
    "gzip",
]
DEVELOPMENT_PACKAGES_DEFAULT: List[str] = [
    "build-essential",
    "python3-pip",
    "pipx",
    "nodejs",
    "npm",
    "jq",
]
SECURITY_PACKAGES_DEFAULT: List[str] = ["gitleaks"]
PIPX_PACKAGES_DEFAULT: List[str] = ["pre-commit"]

# Paths relative to $HOME captured by the backup module.
BACKUP_TARGETS_DEFAULT: List[str] = [
    ".bashrc",
    ".profile",
    ".bashrc.d",
    ".config/secrets.env",
    ".gitignore_global",
    ".config/chezmoi/chezmoi.toml",
    ".ssh/config",
    ".gitconfig",
    ".vimrc",
    ".tmux.conf",
    ".config/starship.toml",
]


class BootstrapSettings(BaseSettings):
    """Settings for one bootstrap invocation."""

    model_config = SettingsConfigDict(
        env_prefix="MACHINE_RITES_", extra="ignore"
    )

    # Target account and XDG layout
    home: Path = Field(
        default_factory=Path.home,
        description="Home directory of the account being configured.",
    )
    xdg_config_home: Optional[Path] = Field(
        default=None, description="Defaults to ~/.config."
    )
    xdg_data_home: Optional[Path] = Field(
        default=None, description="Defaults to ~/.local/share."
    )
    xdg_state_home: Optional[Path] = Field(
        default=None, description="Defaults to ~/.local/state."
    )
    xdg_cache_home: Optional[Path] = Field(
        default=None, description="Defaults to ~/.cache."
    )

    # Dotfiles repository and chezmoi
    repo_url: str = Field(
        default=REPO_URL_DEFAULT,
        description="Git URL of the dotfiles repository.",
    )
    repo_dir: Optional[Path] = Field(
        default=None, description="Checkout location, defaults to ~/git/machine-rites."
    )
    chezmoi_config: Optional[Path] = Field(
        default=None,
        description="chezmoi.toml location, defaults to $XDG_CONFIG_HOME/chezmoi/chezmoi.toml.",
    )
    chezmoi_source: Optional[Path] = Field(
        default=None, description="chezmoi source dir, defaults to <repo_dir>/.chezmoi."
    )

    # Identity and secrets
    git_name: Optional[str] = Field(
        default=None, description="Git user.name; falls back to git config or the login name."
    )
    git_email: Optional[str] = Field(
        default=None, description="Git user.email; falls back to git config or user@host."
    )
    pass_prefix: str = Field(
        default=PASS_PREFIX_DEFAULT,
        description="Folder inside the pass store that receives migrated secrets.",
    )
    gpg_key_id: Optional[str] = Field(
        default=None, description="GPG key used for 'pass init'; autodetected when unset."
    )

    # Run behaviour
    unattended: bool = Field(default=False, description="Never prompt; use defaults.")
    verbose: bool = Field(default=False, description="Enable debug logging.")
    dry_run: bool = Field(default=False, description="Resolve and validate only.")
    fresh: bool = Field(default=False, description="Ignore persisted run state.")
    rollback_on_failure: Optional[bool] = Field(
        default=None,
        description="Roll back on failure. Unset means on in unattended mode, ask otherwise.",
    )
    allow_root: bool = Field(default=False, description="Permit running as root.")
    skip_modules: List[str] = Field(
        default_factory=list, description="Module IDs or names to leave out of the plan."
    )
    modules_dir: Optional[Path] = Field(
        default=None,
        description="Directory of NN-name.sh module scripts used instead of the built-in modules.",
    )
    log_file: Optional[Path] = Field(default=None, description="Optional log file.")
    log_prefix: str = Field(default=LOG_PREFIX_DEFAULT, description="Prefix for console log lines.")

    # State and backups
    state_file: Optional[Path] = Field(
        default=None,
        description="Run state file, defaults to $XDG_STATE_HOME/machine-rites/bootstrap-state.json.",
    )
    backup_root: Optional[Path] = Field(
        default=None, description="Parent directory of backup sets, defaults to ~."
    )
    backup_retention: int = Field(
        default=BACKUP_RETENTION_DEFAULT, ge=1, description="Backup sets kept after a successful run."
    )
    backup_targets: List[str] = Field(
        default_factory=lambda: list(BACKUP_TARGETS_DEFAULT),
        description="Paths relative to home captured by the backup module.",
    )

    # Packages
    essential_packages: List[str] = Field(default_factory=lambda: list(ESSENTIAL_PACKAGES_DEFAULT))
    development_packages: List[str] = Field(default_factory=lambda: list(DEVELOPMENT_PACKAGES_DEFAULT))
    security_packages: List[str] = Field(default_factory=lambda: list(SECURITY_PACKAGES_DEFAULT))
    pipx_packages: List[str] = Field(default_factory=lambda: list(PIPX_PACKAGES_DEFAULT))
    install_development_packages: bool = Field(default=True)
    install_starship: bool = Field(default=False, description="Install the starship prompt.")
    force_package_rollback: bool = Field(
        default=False,
        description="Let the package module remove what it installed on rollback.",
    )
    migrate_plaintext_secrets: bool = Field(default=True)

    symbols: Dict[str, str] = Field(default_factory=lambda: dict(SYMBOLS_DEFAULT))

    @field_validator("symbols")
    @classmethod
    def _fill_symbols(cls, value: Dict[str, str]) -> Dict[str, str]:
        # Partial overrides keep the remaining default symbols.
        return {**SYMBOLS_DEFAULT, **value}

    @field_validator("git_email")
    @classmethod
    def _check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not validate_email(value):
            raise ValueError(f"invalid git email address: {value!r}")
        return value

    @field_validator("git_name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_safe_string(value):
            raise ValueError("git name contains characters unsafe for generated config")
        return value

    @field_validator("repo_url")
    @classmethod
    def _check_repo_url(cls, value: str) -> str:
        if not validate_git_repo(value):
            raise ValueError(f"invalid repository URL: {value!r}")
        return value

    @field_validator("pass_prefix")
    @classmethod
    def _check_pass_prefix(cls, value: str) -> str:
        if not all(validate_shell_identifier(part.replace("-", "_")) for part in value.split("/")):
            raise ValueError(f"invalid pass prefix: {value!r}")
        return value

    @model_validator(mode="after")
    def _derive_paths(self) -> "BootstrapSettings":
        home = self.home.expanduser()
        self.home = home
        if self.xdg_config_home is None:
            self.xdg_config_home = home / ".config"
        if self.xdg_data_home is None:
            self.xdg_data_home = home / ".local" / "share"
        if self.xdg_state_home is None:
            self.xdg_state_home = home / ".local" / "state"
        if self.xdg_cache_home is None:
            self.xdg_cache_home = home / ".cache"
        if self.repo_dir is None:
            self.repo_dir = home / "git" / "machine-rites"
        if self.chezmoi_config is None:
            self.chezmoi_config = self.xdg_config_home / "chezmoi" / "chezmoi.toml"
        if self.chezmoi_source is None:
            self.chezmoi_source = self.repo_dir / ".chezmoi"
        if self.state_file is None:
            self.state_file = self.xdg_state_home / "machine-rites" / "bootstrap-state.json"
        if self.backup_root is None:
            self.backup_root = home
        return self

    @property
    def local_bin(self) -> Path:
        return self.home / ".local" / "bin"

    def effective_rollback_on_failure(self) -> Optional[bool]:
        """True/False when the policy is decided, None when the user should be asked."""
        if self.rollback_on_failure is not None:
            return self.rollback_on_failure
        if self.unattended:
            return True
        return None
