# common/chezmoi_client.py
# -*- coding: utf-8 -*-
"""
Wrapper around the chezmoi command line.

chezmoi owns the rendering of templated dotfiles; the bootstrap only points
it at a source directory and asks it to apply.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from common.command_utils import run_command
from setup.config_models import BootstrapSettings


class ChezmoiClient:
    """Pass/fail calls into chezmoi for one source directory and config file."""

    def __init__(
        self,
        settings: BootstrapSettings,
        source_dir: Optional[Path] = None,
        config_file: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.source_dir = Path(source_dir or settings.chezmoi_source)
        self.config_file = Path(config_file or settings.chezmoi_config)
        self.logger = logger or logging.getLogger(__name__)

    @property
    def executable(self) -> str:
        local = self.settings.local_bin / "chezmoi"
        return str(local) if local.exists() else "chezmoi"

    def _base(self) -> List[str]:
        return [
            self.executable,
            "--source",
            str(self.source_dir),
            "--config",
            str(self.config_file),
        ]

    def _call(self, args: List[str], check: bool = True) -> bool:
        try:
            result = run_command(
                self._base() + args,
                self.settings,
                check=check,
                capture_output=True,
                current_logger=self.logger,
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.warning(f"chezmoi {' '.join(args)} failed: {e}")
            return False
        return result.returncode == 0

    def init(self) -> bool:
        """Initialise chezmoi against the local source directory."""
        return self._call(["init"])

    def add(self, path: Path) -> bool:
        return self._call(["add", str(path)])

    def apply(self) -> bool:
        return self._call(["apply", "--force"])

    def status(self) -> bool:
        """True when chezmoi can compute the target state."""
        return self._call(["status"], check=False)

    def doctor(self) -> bool:
        return self._call(["doctor"], check=False)
