"""
Adapter that runs an ``NN-name.sh`` script as a bootstrap module.

The script is sourced by bash and one of its lifecycle functions
(``validate``, ``execute``, ``verify``, ``rollback``) is called. Settings
reach the script as environment variables; a non-zero exit status becomes
the matching bootstrap error with that status attached.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from bootstrap.base_module import BaseModule
from common.command_utils import run_command
from common.errors import (
    ExecutionError,
    RollbackError,
    ValidationError,
    VerificationError,
)

HEADER_FIELD_RE = re.compile(
    r"^#\s*(Description|Dependencies|Idempotent|Rollback):\s*(.*?)\s*$",
    re.IGNORECASE,
)
HEADER_SCAN_LINES = 40

# $1 is the script, $2 the lifecycle function to call.
_RUNNER = 'set -euo pipefail; source "$1"; "$2"'


def _flag(value: str) -> bool:
    return value.strip().lower().startswith(("yes", "partial", "true"))


def parse_script_header(content: str) -> Dict[str, Any]:
    """
    Read the ``# Field: value`` comments at the top of a module script.

    ``Yes`` and ``Partial`` count as true for the flags. Dependencies are
    split on commas and whitespace; filtering non-module tokens is left to
    the caller.
    """
    header: Dict[str, Any] = {
        "description": "",
        "dependencies": [],
        "idempotent": False,
        "rollback": False,
    }
    for line in content.splitlines()[:HEADER_SCAN_LINES]:
        match = HEADER_FIELD_RE.match(line)
        if not match:
            continue
        field, value = match.group(1).lower(), match.group(2)
        if field == "description":
            header["description"] = value
        elif field == "dependencies":
            header["dependencies"] = [
                token for token in re.split(r"[,\s]+", value) if token
            ]
        else:
            header[field] = _flag(value)
    return header


def defines_function(content: str, name: str) -> bool:
    pattern = rf"^\s*(function\s+)?{re.escape(name)}\s*\(\s*\)"
    return re.search(pattern, content, re.MULTILINE) is not None


class ShellScriptModule(BaseModule):
    """A module implemented by a bash script."""

    def __init__(
        self,
        script_path: Path,
        module_id: str,
        metadata: Dict[str, Any],
        settings,
        context,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__(settings, context, logger or logging.getLogger(module_id))
        self.script_path = Path(script_path)
        self.module_id = module_id
        self.metadata = dict(metadata)

    def _environment(self) -> Dict[str, str]:
        settings = self.settings
        identity = self.context.data
        env = dict(os.environ)
        env.update(
            {
                "HOME": str(settings.home),
                "XDG_CONFIG_HOME": str(settings.xdg_config_home),
                "XDG_DATA_HOME": str(settings.xdg_data_home),
                "XDG_STATE_HOME": str(settings.xdg_state_home),
                "XDG_CACHE_HOME": str(settings.xdg_cache_home),
                "REPO_DIR": str(settings.repo_dir),
                "REPO_URL": settings.repo_url,
                "CHEZMOI_CFG": str(settings.chezmoi_config),
                "CHEZMOI_SRC": str(settings.chezmoi_source),
                "PASS_PREFIX": settings.pass_prefix,
                "UNATTENDED": "1" if settings.unattended else "0",
                "VERBOSE": "1" if settings.verbose else "0",
                "ALLOW_ROOT": "1" if settings.allow_root else "0",
                "MODULE_ID": self.module_id,
            }
        )
        git_name = identity.get("git_name") or settings.git_name
        git_email = identity.get("git_email") or settings.git_email
        if git_name:
            env["GIT_NAME"] = git_name
        if git_email:
            env["GIT_EMAIL"] = git_email
        if self.context.backup_set is not None:
            env["BACKUP_DIR"] = str(self.context.backup_set.path)
        return env

    def _script_content(self) -> str:
        return self.script_path.read_text(encoding="utf-8")

    def _call(self, function: str) -> int:
        result = run_command(
            ["bash", "-c", _RUNNER, self.script_path.name, str(self.script_path), function],
            self.settings,
            check=False,
            capture_output=True,
            current_logger=self.logger,
            cwd=str(self.script_path.parent),
            env=self._environment(),
            log_output=False,
        )
        for line in (result.stdout or "").splitlines():
            self.logger.info(f"  {line}")
        stderr_level = logging.WARNING if result.returncode else logging.DEBUG
        for line in (result.stderr or "").splitlines():
            self.logger.log(stderr_level, f"  {line}")
        return result.returncode

    def _missing_functions(self, names: List[str]) -> List[str]:
        content = self._script_content()
        return [name for name in names if not defines_function(content, name)]

    def validate(self) -> bool:
        missing = self._missing_functions(["validate", "execute"])
        if missing:
            raise ValidationError(
                f"{self.script_path.name} does not define: {', '.join(missing)}"
            )
        returncode = self._call("validate")
        if returncode:
            raise ValidationError(
                f"{self.script_path.name}: validate failed", returncode=returncode
            )
        return True

    def execute(self) -> bool:
        returncode = self._call("execute")
        if returncode:
            raise ExecutionError(
                f"{self.script_path.name}: execute failed", returncode=returncode
            )
        return True

    def verify(self) -> bool:
        if self._missing_functions(["verify"]):
            return True
        returncode = self._call("verify")
        if returncode:
            raise VerificationError(
                f"{self.script_path.name}: verify failed", returncode=returncode
            )
        return True

    def rollback(self) -> bool:
        if self._missing_functions(["rollback"]):
            return super().rollback()
        returncode = self._call("rollback")
        if returncode:
            raise RollbackError(
                f"{self.script_path.name}: rollback failed", returncode=returncode
            )
        return True
