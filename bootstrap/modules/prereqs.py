"""
00-prereqs: check that the machine can be bootstrapped and prepare the
environment the later modules rely on.
"""

from bootstrap.base_module import BaseModule
from bootstrap.registry import ModuleRegistry
from common.command_utils import command_exists, is_root, run_command
from common.git_utils import default_identity, resolve_git_identity
from common.platform_utils import (
    detect_distro,
    detect_distro_version,
    detect_os,
    is_container,
    is_wsl,
    version_at_least,
)
from common.validation import validate_email

REQUIRED_COMMANDS = ["bash", "cp", "mv", "mkdir", "chmod", "ln", "rm"]
SUPPORTED_DISTROS = ("ubuntu", "debian")
MIN_BASH_VERSION = "4.0"


@ModuleRegistry.register(
    "00-prereqs",
    metadata={
        "description": "Prerequisites and validation",
        "dependencies": [],
        "idempotent": True,
        "rollback": False,
    },
)
class PrereqsModule(BaseModule):
    def validate(self) -> bool:
        if is_root():
            if not self.settings.allow_root:
                self.logger.error(
                    f"{self.symbols['error']} Running as root is not supported; "
                    "run as a regular user with sudo access (or set ALLOW_ROOT=1)"
                )
                return False
            self.logger.warning(f"{self.symbols['warning']} Running as root is not recommended")
        elif not command_exists("sudo"):
            self.logger.error(
                f"{self.symbols['error']} 'sudo' is needed for package installs. "
                "Install sudo or run as root."
            )
            return False

        missing = [cmd for cmd in REQUIRED_COMMANDS if not command_exists(cmd)]
        if missing:
            self.logger.error(f"{self.symbols['error']} Required commands missing: {', '.join(missing)}")
            return False
        return True

    def execute(self) -> bool:
        if not self._check_platform():
            return False
        self._check_bash_version()
        self._create_xdg_directories()
        self._resolve_identity()
        return True

    def verify(self) -> bool:
        for directory in self._xdg_directories():
            if not directory.is_dir():
                self.logger.warning(f"Directory not created: {directory}")
                return False
        if not self.context.data.get("git_name") or not self.context.data.get("git_email"):
            self.logger.warning("Git user configuration incomplete")
            return False
        return True

    def _xdg_directories(self):
        settings = self.settings
        return [
            settings.xdg_config_home,
            settings.xdg_data_home,
            settings.xdg_state_home,
            settings.xdg_cache_home,
            settings.local_bin,
        ]

    def _check_platform(self) -> bool:
        os_name = detect_os()
        distro = detect_distro()
        self.logger.info(
            f"Platform: {os_name}/{distro} {detect_distro_version() or ''}".rstrip()
        )
        if is_wsl():
            self.logger.info("Running under WSL")
        if is_container():
            self.logger.info("Running inside a container")

        if os_name == "linux" and distro in SUPPORTED_DISTROS:
            return True
        self.logger.warning(
            f"{self.symbols['warning']} This bootstrap targets Ubuntu/Debian. Detected: {os_name}/{distro}"
        )
        if self.settings.unattended:
            self.logger.warning("Continuing on an unsupported platform in unattended mode")
            return True
        return self.context.confirm("Continue anyway?", default=False)

    def _check_bash_version(self) -> None:
        try:
            result = run_command(
                ["bash", "-c", "echo $BASH_VERSION"],
                self.settings,
                check=False,
                capture_output=True,
                current_logger=self.logger,
            )
        except FileNotFoundError:
            return
        version = (result.stdout or "").strip().split("(")[0]
        if version and not version_at_least(version, MIN_BASH_VERSION):
            self.logger.warning(
                f"{self.symbols['warning']} Bash version is old: {version} (recommended: {MIN_BASH_VERSION}+)"
            )

    def _create_xdg_directories(self) -> None:
        for directory in self._xdg_directories():
            directory.mkdir(parents=True, exist_ok=True)
            self.logger.debug(f"  {directory}")

    def _resolve_identity(self) -> None:
        name, email = resolve_git_identity(self.settings, self.logger)
        if not email:
            fallback = default_identity()[1]
            answer = self.context.ask("Git email not set. Enter email for chezmoi data", fallback)
            if answer != fallback and not validate_email(answer):
                self.logger.warning(f"Not a valid email address: {answer!r}")
                answer = fallback
            if answer == fallback:
                self.logger.warning(f"{self.symbols['warning']} Using default git email: {fallback}")
            email = answer
        self.context.data["git_name"] = name
        self.context.data["git_email"] = email
        self.logger.debug(f"Git identity: {name} <{email}>")
