# common/package_manager.py
# -*- coding: utf-8 -*-
"""
Thin wrapper over the system package manager.

Only the handful of operations the bootstrap needs are covered: refresh the
package index, query, install and remove.
"""

import logging
import os
import subprocess
from typing import Dict, List, Optional, Union

from common.command_utils import (
    command_exists,
    run_command,
    run_elevated_command,
)
from common.platform_utils import get_package_manager
from setup.config_models import BootstrapSettings

PACKAGE_MANAGER_COMMANDS: Dict[str, Dict[str, List[str]]] = {
    "apt": {
        "update": ["apt-get", "update", "-qq"],
        "install": ["apt-get", "install", "-y", "-qq"],
        "remove": ["apt-get", "remove", "-y"],
        "query": ["dpkg", "-s"],
    },
    "dnf": {
        "update": ["dnf", "makecache", "-q"],
        "install": ["dnf", "install", "-y"],
        "remove": ["dnf", "remove", "-y"],
        "query": ["rpm", "-q"],
    },
    "yum": {
        "update": ["yum", "makecache", "-q"],
        "install": ["yum", "install", "-y"],
        "remove": ["yum", "remove", "-y"],
        "query": ["rpm", "-q"],
    },
    "pacman": {
        "update": ["pacman", "-Sy"],
        "install": ["pacman", "-S", "--noconfirm", "--needed"],
        "remove": ["pacman", "-R", "--noconfirm"],
        "query": ["pacman", "-Q"],
    },
    "zypper": {
        "update": ["zypper", "--non-interactive", "refresh"],
        "install": ["zypper", "--non-interactive", "install"],
        "remove": ["zypper", "--non-interactive", "remove"],
        "query": ["rpm", "-q"],
    },
    "apk": {
        "update": ["apk", "update"],
        "install": ["apk", "add"],
        "remove": ["apk", "del"],
        "query": ["apk", "info", "-e"],
    },
    "brew": {
        "update": ["brew", "update"],
        "install": ["brew", "install"],
        "remove": ["brew", "uninstall"],
        "query": ["brew", "list", "--versions"],
    },
}

# brew refuses to run as root; everything else needs it.
UNPRIVILEGED_MANAGERS = {"brew"}


class PackageManager:
    """
    Install/remove/query packages with whichever manager the platform uses.
    """

    def __init__(
        self,
        settings: BootstrapSettings,
        name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            settings: Bootstrap settings.
            name: Manager key from PACKAGE_MANAGER_COMMANDS; detected when omitted.
            logger: Optional logging object.

        Raises:
            FileNotFoundError: No supported package manager is available.
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or get_package_manager()
        if self.name not in PACKAGE_MANAGER_COMMANDS:
            raise FileNotFoundError(
                f"No supported package manager found (detected '{self.name}')"
            )
        self.commands = PACKAGE_MANAGER_COMMANDS[self.name]
        if not command_exists(self.commands["install"][0]):
            raise FileNotFoundError(
                f"'{self.commands['install'][0]}' not found in PATH"
            )

    def _env(self) -> Optional[Dict[str, str]]:
        if self.name != "apt":
            return None
        env = dict(os.environ)
        env["DEBIAN_FRONTEND"] = "noninteractive"
        return env

    def _run(self, command: List[str], check: bool = True) -> subprocess.CompletedProcess:
        if self.name in UNPRIVILEGED_MANAGERS:
            return run_command(
                command,
                self.settings,
                check=check,
                capture_output=True,
                current_logger=self.logger,
                env=self._env(),
            )
        # sudo resets most of the environment; pass the frontend explicitly
        if self.name == "apt" and os.geteuid() != 0:
            command = ["env", "DEBIAN_FRONTEND=noninteractive"] + command
        return run_elevated_command(
            command,
            self.settings,
            check=check,
            capture_output=True,
            current_logger=self.logger,
            env=self._env(),
        )

    def update(self) -> bool:
        """Refresh the package index."""
        self.logger.info(f"Updating package index via {self.name}...")
        try:
            self._run(self.commands["update"])
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.error(f"Failed to update package index: {e}")
            return False
        return True

    def is_installed(self, package: str) -> bool:
        try:
            result = run_command(
                self.commands["query"] + [package],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
            )
        except FileNotFoundError:
            return False
        if result.returncode != 0:
            return False
        if self.name == "apt":
            return "Status: install ok installed" in (result.stdout or "")
        return True

    def missing(self, packages: List[str]) -> List[str]:
        return [pkg for pkg in packages if not self.is_installed(pkg)]

    def install(self, packages: Union[List[str], str]) -> bool:
        """
        Install whatever in ``packages`` is not installed yet.

        Returns:
            True when every package ends up installed.
        """
        if not isinstance(packages, list):
            packages = [packages]
        to_install = self.missing(packages)
        if not to_install:
            self.logger.info("All requested packages are already installed.")
            return True
        self.logger.info(f"Installing: {', '.join(to_install)}")
        try:
            self._run(self.commands["install"] + to_install)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.error(f"Failed to install packages: {e}")
            return False
        return True

    def remove(self, packages: Union[List[str], str]) -> bool:
        if not isinstance(packages, list):
            packages = [packages]
        if not packages:
            return True
        self.logger.info(f"Removing: {', '.join(packages)}")
        try:
            self._run(self.commands["remove"] + packages)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            self.logger.error(f"Failed to remove packages: {e}")
            return False
        return True
