# common/git_utils.py
# -*- coding: utf-8 -*-
"""
git helpers: fetching the dotfiles repository and reading identity.
"""

import getpass
import logging
import socket
import subprocess
from pathlib import Path
from typing import Optional, Tuple

from common.command_utils import run_command
from setup.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)


def get_git_config(
    key: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Global git config value, or None when unset or git is missing."""
    try:
        result = run_command(
            ["git", "config", "--global", "--get", key],
            settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
        )
    except FileNotFoundError:
        return None
    value = (result.stdout or "").strip()
    return value if result.returncode == 0 and value else None


def set_git_config(
    key: str,
    value: str,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
    repo_dir: Optional[Path] = None,
) -> None:
    """Set ``key`` globally, or locally in ``repo_dir`` when given."""
    scope = [] if repo_dir else ["--global"]
    run_command(
        ["git", "config"] + scope + [key, value],
        settings,
        current_logger=current_logger,
        cwd=str(repo_dir) if repo_dir else None,
    )


def is_git_repo(path: Path) -> bool:
    return (Path(path) / ".git").exists()


def clone_or_pull(
    repo_url: str,
    repo_dir: Path,
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Clone ``repo_url`` into ``repo_dir``, or fast-forward an existing checkout.

    A pull that cannot fast-forward (local changes, diverged history) is
    logged as a warning and the existing checkout is kept.

    Returns:
        True when ``repo_dir`` holds a checkout afterwards.

    Raises:
        subprocess.CalledProcessError: The clone failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    repo_dir = Path(repo_dir)

    if not is_git_repo(repo_dir):
        if repo_dir.exists() and any(repo_dir.iterdir()):
            logger_to_use.error(
                f"{repo_dir} exists, is not empty and is not a git repository"
            )
            return False
        repo_dir.parent.mkdir(parents=True, exist_ok=True)
        logger_to_use.info(f"Cloning {repo_url} -> {repo_dir}")
        run_command(
            ["git", "clone", repo_url, str(repo_dir)],
            settings,
            capture_output=True,
            current_logger=logger_to_use,
        )
        return True

    logger_to_use.info(f"Updating existing repository: {repo_dir}")
    try:
        run_command(
            ["git", "fetch", "origin"],
            settings,
            capture_output=True,
            current_logger=logger_to_use,
            cwd=str(repo_dir),
        )
        run_command(
            ["git", "pull", "--ff-only"],
            settings,
            capture_output=True,
            current_logger=logger_to_use,
            cwd=str(repo_dir),
        )
    except subprocess.CalledProcessError:
        logger_to_use.warning(
            "Could not update repository (may have local changes); keeping the current checkout"
        )
    return True


def init_repo(
    path: Path,
    settings: Optional[BootstrapSettings],
    name: Optional[str] = None,
    email: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """``git init`` ``path`` if needed and set a local identity."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    if not is_git_repo(path):
        run_command(
            ["git", "init", "-q"],
            settings,
            current_logger=current_logger,
            cwd=str(path),
        )
    if name:
        set_git_config("user.name", name, settings, current_logger, repo_dir=path)
    if email:
        set_git_config("user.email", email, settings, current_logger, repo_dir=path)


def default_identity() -> Tuple[str, str]:
    """(login name, login@hostname), the last-resort identity."""
    user = getpass.getuser()
    return user, f"{user}@{socket.gethostname()}"


def resolve_git_identity(
    settings: BootstrapSettings,
    current_logger: Optional[logging.Logger] = None,
) -> Tuple[str, Optional[str]]:
    """
    Name and email from settings, then global git config.

    The name falls back to the login name. The email is None when neither
    source has one, so the caller can ask or pick a default.
    """
    name = settings.git_name or get_git_config("user.name", settings, current_logger)
    email = settings.git_email or get_git_config("user.email", settings, current_logger)
    return name or default_identity()[0], email
