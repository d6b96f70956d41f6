# common/command_utils.py
# -*- coding: utf-8 -*-
"""
Utilities for executing shell commands and logging their output.
"""

import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional, Union

from setup.config_models import SYMBOLS_DEFAULT, BootstrapSettings

module_logger = logging.getLogger(__name__)


def _symbols(settings: Optional[BootstrapSettings]) -> Dict[str, str]:
    return settings.symbols if settings and settings.symbols else SYMBOLS_DEFAULT


def log_message(
    message: str,
    level: str = "info",
    current_logger: Optional[logging.Logger] = None,
    settings: Optional[BootstrapSettings] = None,
    exc_info: bool = False,
) -> None:
    """
    Log ``message`` at the level named by ``level``.

    Args:
        message: The log message.
        level: "debug", "info", "success", "warning", "error" or "critical".
            "success" and unknown names are logged at INFO.
        current_logger: Logger to use; the module logger when omitted.
        settings: Accepted for call-site symmetry with the command helpers.
        exc_info: Attach the current exception to the record.
    """
    effective_logger = current_logger if current_logger else module_logger

    if level == "warning":
        effective_logger.warning(message, exc_info=exc_info)
    elif level == "error":
        effective_logger.error(message, exc_info=exc_info)
    elif level == "critical":
        effective_logger.critical(message, exc_info=exc_info)
    elif level == "debug":
        effective_logger.debug(message, exc_info=exc_info)
    else:
        effective_logger.info(message, exc_info=exc_info)


def is_root() -> bool:
    return os.geteuid() == 0


def _get_elevated_command_prefix() -> List[str]:
    """["sudo"] unless the process already runs as root."""
    return [] if is_root() else ["sudo"]


def run_command(
    command: Union[List[str], str],
    settings: Optional[BootstrapSettings],
    check: bool = True,
    shell: bool = False,
    capture_output: bool = False,
    text: bool = True,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    log_output: bool = True,
) -> subprocess.CompletedProcess:
    """
    Execute a command, logging what runs and what it printed.

    Args:
        command: Argument list, or a string when ``shell`` is True.
        settings: Bootstrap settings, used for log symbols.
        check: Raise CalledProcessError on a non-zero exit status.
        shell: Run through /bin/sh.
        capture_output: Capture stdout/stderr (logged at DEBUG).
        text: Decode output as text.
        cmd_input: Data written to the command's stdin.
        current_logger: Logger to use; the module logger when omitted.
        cwd: Working directory.
        env: Full environment for the child process.
        log_output: Log captured output; off for commands that print secrets.

    Returns:
        The CompletedProcess.

    Raises:
        subprocess.CalledProcessError: ``check`` is True and the command failed.
        FileNotFoundError: The executable does not exist.
    """
    effective_logger = current_logger if current_logger else module_logger
    symbols = _symbols(settings)

    if shell:
        command_to_run: Union[List[str], str] = (
            " ".join(command) if isinstance(command, list) else command
        )
        command_to_log_str = str(command_to_run)
    else:
        if isinstance(command, str):
            log_message(
                f"{symbols.get('warning', '!')} Running string command '{command}' without shell=True. Consider list format.",
                "warning",
                effective_logger,
                settings,
            )
            command_to_run = command.split()
            command_to_log_str = command
        else:
            command_to_run = list(command)
            command_to_log_str = subprocess.list2cmdline(command_to_run)

    log_message(
        f"{symbols.get('gear', '⚙️')} Executing: {command_to_log_str}{f' (in {cwd})' if cwd else ''}",
        "debug",
        effective_logger,
        settings,
    )
    try:
        result = subprocess.run(
            command_to_run,
            check=check,
            shell=shell,
            capture_output=capture_output,
            text=text,
            input=cmd_input,
            cwd=cwd,
            env=env,
        )
        if capture_output and log_output:
            if result.stdout and str(result.stdout).strip():
                log_message(
                    f"   stdout: {str(result.stdout).strip()}",
                    "debug",
                    effective_logger,
                    settings,
                )
            if result.stderr and str(result.stderr).strip():
                log_message(
                    f"   stderr: {str(result.stderr).strip()}",
                    "debug",
                    effective_logger,
                    settings,
                )
        return result
    except subprocess.CalledProcessError as e:
        cmd_executed_str = (
            subprocess.list2cmdline(e.cmd)
            if isinstance(e.cmd, list)
            else str(e.cmd)
        )
        log_message(
            f"{symbols.get('error', '❌')} Command `{cmd_executed_str}` failed (rc {e.returncode}).",
            "error",
            effective_logger,
            settings,
        )
        for stream_name, stream in (("stdout", e.stdout), ("stderr", e.stderr)):
            if stream and hasattr(stream, "strip") and stream.strip():
                log_message(
                    f"   {stream_name}: {stream.strip()}",
                    "error",
                    effective_logger,
                    settings,
                )
        raise
    except FileNotFoundError as e:
        log_message(
            f"{symbols.get('error', '❌')} Command not found: {e.filename}. Ensure it's installed and in PATH.",
            "error",
            effective_logger,
            settings,
        )
        raise


def run_elevated_command(
    command: List[str],
    settings: Optional[BootstrapSettings],
    check: bool = True,
    capture_output: bool = False,
    cmd_input: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """run_command with a sudo prefix when the process is not root."""
    elevated_command_list = _get_elevated_command_prefix() + list(command)
    return run_command(
        elevated_command_list,
        settings,
        check=check,
        shell=False,
        capture_output=capture_output,
        text=True,
        cmd_input=cmd_input,
        current_logger=current_logger,
        cwd=cwd,
        env=env,
    )


def command_exists(command_name: str) -> bool:
    """
    Check if a command exists in the system's PATH.
    """
    return shutil.which(command_name) is not None


def command_succeeds(
    command: List[str],
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
    cwd: Optional[str] = None,
) -> bool:
    """True when ``command`` exits 0; a missing executable counts as failure."""
    try:
        result = run_command(
            command,
            settings,
            check=False,
            capture_output=True,
            current_logger=current_logger,
            cwd=cwd,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


def has_sudo(
    settings: Optional[BootstrapSettings],
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    True when sudo is usable. ``sudo -n true`` avoids blocking on a password
    prompt; an installed sudo that needs a password still counts in
    interactive mode because the prompt will appear on the terminal.
    """
    if not command_exists("sudo"):
        return False
    if command_succeeds(["sudo", "-n", "true"], settings, current_logger):
        return True
    return not (settings and settings.unattended)
