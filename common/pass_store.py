# common/pass_store.py
# -*- coding: utf-8 -*-
"""
Minimal pass/GPG access for migrating plaintext secrets.

The store's own format is never touched directly; everything goes through
the ``pass`` and ``gpg`` commands.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from common.command_utils import command_succeeds, run_command
from setup.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_secrets_env(content: str) -> Tuple[Dict[str, str], List[str]]:
    """
    Parse ``KEY=VALUE`` lines.

    Comments and blank lines are skipped, whitespace around key and value is
    trimmed and one pair of matching surrounding quotes is removed. Keys that
    are not shell identifiers are rejected.

    Returns:
        (entries, rejected_keys)
    """
    entries: Dict[str, str] = {}
    rejected: List[str] = []
    for lineno, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not _KEY_RE.match(key):
            rejected.append(key if sep and key else f"line {lineno}")
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        entries[key] = value
    return entries, rejected


def find_secret_key(
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Key ID of the first GPG secret key, or None."""
    try:
        result = run_command(
            ["gpg", "--list-secret-keys", "--with-colons"],
            settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
        )
    except FileNotFoundError:
        return None
    if result.returncode != 0:
        return None
    for line in (result.stdout or "").splitlines():
        fields = line.split(":")
        if fields[0] == "sec" and len(fields) > 4 and fields[4]:
            return fields[4]
    return None


class PassStore:
    """The user's password store."""

    def __init__(
        self,
        settings: BootstrapSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or module_logger

    def is_initialized(self) -> bool:
        return command_succeeds(["pass", "ls"], self.settings, self.logger)

    def init(self, key_id: str) -> bool:
        try:
            run_command(
                ["pass", "init", key_id],
                self.settings,
                capture_output=True,
                current_logger=self.logger,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.error(f"pass init failed: {e}")
            return False
        return True

    def entry_name(self, key: str) -> str:
        return f"{self.settings.pass_prefix}/{key.lower()}"

    def show(self, entry: str) -> Optional[str]:
        """First line of ``entry``, or None when it does not exist."""
        try:
            result = run_command(
                ["pass", "show", entry],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
                log_output=False,
            )
        except FileNotFoundError:
            return None
        if result.returncode != 0:
            return None
        lines = (result.stdout or "").splitlines()
        return lines[0] if lines else ""

    def insert(self, entry: str, value: str) -> bool:
        """Store ``value`` as ``entry``, replacing an existing one."""
        try:
            run_command(
                ["pass", "insert", "--multiline", "--force", entry],
                self.settings,
                cmd_input=value + "\n",
                capture_output=True,
                current_logger=self.logger,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.warning(f"pass insert {entry} failed: {e}")
            return False
        return True

    def migrate_env_file(self, secrets_file: Path) -> Tuple[int, int]:
        """
        Copy every entry of ``secrets_file`` into the store under the prefix.

        Entries whose stored value already matches are left alone.

        Returns:
            (migrated, failed)
        """
        content = Path(secrets_file).read_text(encoding="utf-8")
        entries, rejected = parse_secrets_env(content)
        for key in rejected:
            self.logger.warning(f"Skipping invalid key format: {key}")
        migrated = 0
        failed = len(rejected)
        for key, value in entries.items():
            entry = self.entry_name(key)
            if self.show(entry) == value:
                self.logger.debug(f"{entry} already up to date")
                continue
            if self.insert(entry, value):
                migrated += 1
                self.logger.info(f"Migrated secret: {key} -> {entry}")
            else:
                failed += 1
        return migrated, failed
