# setup/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the bootstrap.

Handles loading settings from Pydantic model defaults, environment variables,
a YAML file and command-line arguments, applying this order of precedence:
1. Pydantic Model Defaults
2. Environment Variables (MACHINE_RITES_* via BaseSettings, plus the legacy
   SKIP_MODULES / SKIP_<MODULE> / ALLOW_ROOT switches)
3. YAML Configuration File
4. Command-Line Arguments
"""

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from common.errors import ConfigurationError

from .config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"
CONFIG_SUBDIR = "machine-rites"

# argparse dest -> settings field
CLI_FIELD_MAP: Dict[str, str] = {
    "unattended": "unattended",
    "verbose": "verbose",
    "dry_run": "dry_run",
    "fresh": "fresh",
    "rollback_on_failure": "rollback_on_failure",
    "modules_dir": "modules_dir",
    "log_file": "log_file",
    "home": "home",
    "state_file": "state_file",
}

_TRUTHY = {"1", "true", "yes", "on"}


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively update ``source`` with ``overrides``.

    Nested dictionaries are merged key by key; any other value replaces the
    existing one unless it is None.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
        elif key not in source:
            source[key] = value
    return source


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """$XDG_CONFIG_HOME/machine-rites/config.yaml, resolved from the environment."""
    env = os.environ if environ is None else environ
    config_home = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / CONFIG_SUBDIR / CONFIG_FILE_NAME


def legacy_env_overrides(
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Translate the switches understood by the shell bootstrap into settings.

    ``SKIP_MODULES`` holds module names separated by spaces or commas,
    ``SKIP_<NAME>=1`` skips a single module (``SKIP_DEVTOOLS=1`` skips
    ``60-devtools``), ``ALLOW_ROOT=1`` permits running as root.
    """
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    skipped: List[str] = []

    raw = env.get("SKIP_MODULES", "")
    skipped.extend(
        token for token in raw.replace(",", " ").split() if token
    )
    for key, value in env.items():
        if key.startswith("SKIP_") and key != "SKIP_MODULES":
            if value.strip().lower() in _TRUTHY:
                skipped.append(key[len("SKIP_"):].lower().replace("_", "-"))

    if skipped:
        overrides["skip_modules"] = skipped
    if env.get("ALLOW_ROOT", "").strip().lower() in _TRUTHY:
        overrides["allow_root"] = True
    return overrides


def _read_yaml(
    config_path: Path, logger_to_use: logging.Logger
) -> Dict[str, Any]:
    if not config_path.is_file():
        logger_to_use.debug(
            f"Configuration file '{config_path}' not found. Using defaults, environment variables, and CLI args."
        )
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse YAML config file '{config_path}': {e}"
        ) from e
    except OSError as e:
        logger_to_use.warning(
            f"Could not read config file '{config_path}': {e}. Using defaults and environment variables."
        )
        return {}
    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        logger_to_use.warning(
            f"Config file '{config_path}' does not contain a YAML mapping. Ignoring."
        )
        return {}
    logger_to_use.info(f"Loaded configuration from {config_path}")
    return yaml_data


def load_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: Optional[Path] = None,
    skip_modules: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    current_logger: Optional[logging.Logger] = None,
) -> BootstrapSettings:
    """
    Load settings with the precedence documented at module level.

    BaseSettings reads the MACHINE_RITES_* environment itself; everything
    layered above it (legacy switches, YAML, CLI) is passed as init kwargs,
    which pydantic-settings ranks above the environment.

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: YAML file to read. When None the default location is
            used and a missing file is not an error.
        skip_modules: Modules named by ``--skip-<module>`` flags. They are
            appended to whatever the lower layers already skip.
        environ: Environment used for the legacy switches and the default
            config location (defaults to os.environ).
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        The validated BootstrapSettings.

    Raises:
        ConfigurationError: If the YAML is malformed, an explicit config file
            is missing, or validation fails.
    """
    logger_to_use = current_logger if current_logger else module_logger

    overrides = legacy_env_overrides(environ)
    extra_skips: List[str] = list(overrides.pop("skip_modules", []))

    if config_file_path is not None:
        if not Path(config_file_path).is_file():
            raise ConfigurationError(
                f"Configuration file '{config_file_path}' does not exist"
            )
        yaml_path = Path(config_file_path)
    else:
        yaml_path = default_config_path(environ)
    yaml_values = _read_yaml(yaml_path, logger_to_use)
    extra_skips = list(yaml_values.pop("skip_modules", None) or []) + extra_skips
    overrides = _deep_update(overrides, yaml_values)

    if cli_args is not None:
        cli_values: Dict[str, Any] = {}
        for dest, field in CLI_FIELD_MAP.items():
            value = getattr(cli_args, dest, None)
            # store_true flags left at False must not mask env/YAML values
            if value is None or (value is False and field != "rollback_on_failure"):
                continue
            cli_values[field] = value
        overrides = _deep_update(overrides, cli_values)
    extra_skips.extend(skip_modules or [])

    try:
        settings = BootstrapSettings(**overrides)
    except PydanticValidationError as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Configuration error: {e}") from e

    for name in extra_skips:
        if name not in settings.skip_modules:
            settings.skip_modules.append(name)

    logger_to_use.debug("Loaded and validated bootstrap settings")
    return settings
