"""
20-system-packages: install the tools the rest of the bootstrap needs.

Packages come from the configured essential/development/security groups.
chezmoi and starship are installed with their upstream installers into
``~/.local/bin``; pre-commit and friends through pipx. What this run
installed is written to an installation record in the backup set so a
forced rollback can remove exactly that.
"""

import subprocess
from pathlib import Path
from typing import List, Optional

from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry
from common.atomic_utils import write_atomic
from common.command_utils import (
    command_exists,
    command_succeeds,
    has_sudo,
    is_root,
    run_command,
)
from common.package_manager import PackageManager
from common.platform_utils import version_at_least

CHEZMOI_INSTALL_URL = "https://get.chezmoi.io"
STARSHIP_INSTALL_URL = "https://starship.rs/install.sh"
CONNECTIVITY_URL = "https://packages.ubuntu.com"
CRITICAL_COMMANDS = ["git", "curl", "gpg", "pass", "chezmoi"]
MINIMUM_VERSIONS = {"chezmoi": "2.0", "git": "2.25", "gpg": "2.0"}
PIPX_PREFIX = "pipx:"
LOCAL_BIN_PREFIX = "bin:"


@ModuleRegistry.register(
    "20-system-packages",
    metadata={
        "description": "System package installation",
        "dependencies": ["00-prereqs"],
        "idempotent": True,
        "rollback": True,  # partial: only with force_package_rollback or confirmation
    },
)
class SystemPackagesModule(BaseModule):
    def __init__(self, settings, context, logger=None):
        super().__init__(settings, context, logger)
        self._package_manager: Optional[PackageManager] = None
        self.installed: List[str] = []
        self.failed: List[str] = []

    @property
    def package_manager(self) -> PackageManager:
        if self._package_manager is None:
            self._package_manager = PackageManager(self.settings, logger=self.logger)
        return self._package_manager

    @property
    def record_path(self) -> Optional[Path]:
        backup_set = self.context.backup_set
        if backup_set is None:
            return None
        return backup_set.path / f".installed_packages_{self.module_id}"

    def validate(self) -> bool:
        try:
            self.package_manager
        except FileNotFoundError as e:
            self.logger.error(f"{self.symbols['error']} {e}")
            return False
        if not is_root() and not has_sudo(self.settings, self.logger):
            self.logger.error(
                f"{self.symbols['error']} sudo is not usable without a password in unattended mode"
            )
            return False
        if command_exists("curl") and not command_succeeds(
            ["curl", "-s", "--connect-timeout", "5", "-o", "/dev/null", CONNECTIVITY_URL],
            self.settings,
            self.logger,
        ):
            self.logger.warning(
                f"{self.symbols['warning']} Network connectivity check failed; package installation may fail"
            )
            if not self.settings.unattended:
                return self.context.confirm("Continue anyway?", default=False)
        return True

    def execute(self) -> bool:
        settings = self.settings
        if not self.package_manager.update():
            self.logger.warning("Package index update failed; trying to install anyway")

        if not self._install_group("essential", settings.essential_packages):
            self.logger.error(f"{self.symbols['error']} Essential packages could not be installed")
            self._store_installation_record()
            return False
        if settings.install_development_packages:
            self._install_group("development", settings.development_packages)
        self._install_group("security", settings.security_packages)

        self._install_chezmoi()
        self._install_pipx_packages()
        self._install_starship()
        self._check_tool_versions()
        self._store_installation_record()
        self.context.data["installed_packages"] = list(self.installed)
        if self.failed:
            self.logger.warning(f"{self.symbols['warning']} Not installed: {', '.join(self.failed)}")
        return True

    def verify(self) -> bool:
        problems = 0
        for package in self.package_manager.missing(self.settings.essential_packages):
            self.logger.warning(f"Essential package not installed: {package}")
            problems += 1
        for command in CRITICAL_COMMANDS:
            if not self._has_command(command):
                self.logger.warning(f"Critical command not available: {command}")
                problems += 1
        if problems:
            self.logger.warning(f"Package verification failed: {problems} issues found")
            return False
        return True

    def rollback(self) -> bool:
        record = self.record_path
        if record is None or not record.is_file():
            self.logger.warning("No installation record found; packages left in place")
            return True
        packages = [
            line.strip()
            for line in record.read_text(encoding="utf-8").splitlines()
            if line.strip() and not line.startswith("#")
        ]
        if not packages:
            return True
        self.logger.warning(
            f"{self.symbols['warning']} Package rollback can be dangerous; "
            f"{len(packages)} package(s) were installed by this run"
        )
        if not self.settings.force_package_rollback:
            if self.settings.unattended or not self.context.confirm(
                "Really remove the packages installed by this run?", default=False
            ):
                self.logger.info("Package rollback skipped (set force_package_rollback to override)")
                return True

        system = [p for p in packages if not p.startswith((PIPX_PREFIX, LOCAL_BIN_PREFIX))]
        ok = self.package_manager.remove(system) if system else True
        for entry in packages:
            if entry.startswith(PIPX_PREFIX):
                ok = command_succeeds(
                    ["pipx", "uninstall", entry[len(PIPX_PREFIX):]], self.settings, self.logger
                ) and ok
            elif entry.startswith(LOCAL_BIN_PREFIX):
                binary = self.settings.local_bin / entry[len(LOCAL_BIN_PREFIX):]
                if binary.exists():
                    binary.unlink()
                    self.logger.info(f"Removed {binary}")
        return ok

    def _has_command(self, command: str) -> bool:
        return command_exists(command) or (self.settings.local_bin / command).exists()

    def _install_group(self, group: str, packages: List[str]) -> bool:
        if not packages:
            return True
        missing = self.package_manager.missing(packages)
        if not missing:
            self.logger.info(f"All {group} packages already installed")
            return True
        self.logger.info(f"{self.symbols['package']} Installing {group} packages: {', '.join(missing)}")
        self.package_manager.install(missing)
        still_missing = self.package_manager.missing(missing)
        self.installed += [p for p in missing if p not in still_missing]
        if still_missing:
            self.logger.warning(f"Some {group} packages failed to install: {', '.join(still_missing)}")
            self.failed += still_missing
            return False
        return True

    def _run_installer(self, url: str, args: List[str]) -> bool:
        """Pipe an upstream install script from ``url`` into sh."""
        try:
            script = run_command(
                ["curl", "-fsSL", url],
                self.settings,
                capture_output=True,
                current_logger=self.logger,
                log_output=False,
            ).stdout
            run_command(
                ["sh", "-s", "--"] + args,
                self.settings,
                cmd_input=script,
                capture_output=True,
                current_logger=self.logger,
            )
        except (subprocess.CalledProcessError, FileNotFoundError):
            return False
        return True

    def _install_chezmoi(self) -> None:
        if self._has_command("chezmoi"):
            self.logger.info("chezmoi already installed")
            return
        self.logger.info(f"{self.symbols['package']} Installing chezmoi via the official installer")
        self.settings.local_bin.mkdir(parents=True, exist_ok=True)
        if self._run_installer(CHEZMOI_INSTALL_URL, ["-b", str(self.settings.local_bin)]) and (
            self.settings.local_bin / "chezmoi"
        ).exists():
            self.installed.append(f"{LOCAL_BIN_PREFIX}chezmoi")
        else:
            self.logger.warning("chezmoi installation failed")
            self.failed.append("chezmoi")

    def _install_pipx_packages(self) -> None:
        if not command_exists("pipx"):
            self.logger.info("pipx not available, skipping pipx packages")
            return
        command_succeeds(["pipx", "ensurepath"], self.settings, self.logger)
        for package in self.settings.pipx_packages:
            if self._has_command(package):
                self.logger.info(f"{package} already available")
                continue
            self.logger.info(f"Installing {package} via pipx")
            if command_succeeds(["pipx", "install", package], self.settings, self.logger):
                self.installed.append(f"{PIPX_PREFIX}{package}")
            else:
                self.logger.warning(f"Failed to install {package} via pipx")
                self.failed.append(f"{PIPX_PREFIX}{package}")

    def _install_starship(self) -> None:
        if self._has_command("starship"):
            self.logger.info("starship already installed")
            return
        wanted = self.settings.install_starship
        if not wanted and not self.settings.unattended:
            wanted = self.context.confirm("Install the starship prompt?", default=False)
        if not wanted:
            self.logger.info("starship installation skipped")
            return
        self.settings.local_bin.mkdir(parents=True, exist_ok=True)
        if self._run_installer(STARSHIP_INSTALL_URL, ["-b", str(self.settings.local_bin), "-y"]):
            self.installed.append(f"{LOCAL_BIN_PREFIX}starship")
        else:
            self.logger.warning("starship installation failed")
            self.failed.append("starship")

    def _check_tool_versions(self) -> None:
        for tool, minimum in MINIMUM_VERSIONS.items():
            executable = tool
            if not command_exists(tool) and (self.settings.local_bin / tool).exists():
                executable = str(self.settings.local_bin / tool)
            try:
                result = run_command(
                    [executable, "--version"],
                    self.settings,
                    check=False,
                    capture_output=True,
                    current_logger=self.logger,
                )
            except FileNotFoundError:
                continue
            words = (result.stdout or "").split()
            version = next((w.lstrip("v").rstrip(",") for w in words if w.lstrip("v")[:1].isdigit()), "")
            if version and not version_at_least(version, minimum):
                self.logger.warning(f"{tool} version {version} is older than {minimum}")

    def _store_installation_record(self) -> None:
        record = self.record_path
        if record is None:
            return
        lines = [f"# Installed by {self.module_id}"] + self.installed
        write_atomic(record, "\n".join(lines) + "\n", current_logger=self.logger)
