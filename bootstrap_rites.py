#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Entry point for the machine-rites bootstrap.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from bootstrap.orchestrator import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_RESOLVER_ERROR,
    BootstrapOrchestrator,
)
from common.errors import ConfigurationError, ResolverError
from common.logging_config import setup_logging
from setup.config_loader import load_settings

SKIP_FLAG_PREFIX = "--skip-"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="machine-rites-bootstrap",
        description="Bootstrap a workstation's dotfiles, packages and secrets.",
        epilog="Any module can be skipped with --skip-<module>, e.g. --skip-50-secrets or --skip-devtools.",
    )
    parser.add_argument(
        "-u", "--unattended", action="store_true", help="Never prompt; use defaults"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the plan and validate modules without changing anything",
    )
    parser.add_argument(
        "--rollback",
        action="store_true",
        help="Roll back the modules recorded by the last run",
    )
    parser.add_argument(
        "--list-modules", action="store_true", help="List modules and exit"
    )
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Ignore the saved run state and start over",
    )
    parser.add_argument(
        "--rollback-on-failure",
        dest="rollback_on_failure",
        action="store_true",
        default=None,
        help="Roll back automatically when a module fails",
    )
    parser.add_argument(
        "--no-rollback-on-failure",
        dest="rollback_on_failure",
        action="store_false",
        help="Never roll back automatically when a module fails",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="YAML configuration file"
    )
    parser.add_argument(
        "--modules-dir",
        type=Path,
        default=None,
        help="Run shell-script modules from this directory instead of the built-in ones",
    )
    parser.add_argument(
        "--log-file", type=Path, default=None, help="Also write the log to this file"
    )
    parser.add_argument(
        "--state-file", type=Path, default=None, help=argparse.SUPPRESS
    )
    parser.add_argument(
        "modules",
        nargs="*",
        help="Modules to run (ID like 30-chezmoi or name like chezmoi); all when omitted",
    )
    return parser


def parse_args(
    args: Optional[List[str]] = None,
) -> Tuple[argparse.Namespace, List[str]]:
    """
    Parse command-line arguments.

    ``--skip-<module>`` flags are open-ended, so they are pulled out of the
    unknown arguments rather than declared.

    Returns:
        (namespace, skipped module tokens)
    """
    parser = build_parser()
    all_args = args if args is not None else sys.argv[1:]
    parsed_args, unknown = parser.parse_known_args(all_args)

    skipped: List[str] = []
    leftovers: List[str] = []
    for arg in unknown:
        if arg.startswith(SKIP_FLAG_PREFIX) and len(arg) > len(SKIP_FLAG_PREFIX):
            skipped.append(arg[len(SKIP_FLAG_PREFIX):])
        elif not arg.startswith("-"):
            # Module IDs after a --skip flag land here instead of in the positional.
            parsed_args.modules.append(arg)
        else:
            leftovers.append(arg)
    if leftovers:
        parser.error(f"unrecognized arguments: {' '.join(leftovers)}")
    return parsed_args, skipped


def print_module_table(rows) -> None:
    print(f"{'MODULE':<22} {'STATUS':<12} {'ROLLBACK':<9} {'DEPENDS ON':<36} DESCRIPTION")
    for row in rows:
        deps = ", ".join(row["dependencies"]) or "-"
        rollback = "yes" if row["rollback"] else "no"
        print(
            f"{row['id']:<22} {row['status']:<12} {rollback:<9} {deps:<36} {row['description']}"
        )


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the machine-rites bootstrap."""
    parsed_args, skipped = parse_args(args)
    logger = setup_logging(verbose=parsed_args.verbose, log_file=parsed_args.log_file)

    try:
        settings = load_settings(
            cli_args=parsed_args,
            config_file_path=parsed_args.config,
            skip_modules=skipped,
            current_logger=logger,
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_RESOLVER_ERROR

    # Reconfigure with the symbols and prefix from the settings.
    logger = setup_logging(
        verbose=settings.verbose,
        log_file=settings.log_file,
        log_prefix=settings.log_prefix,
        symbols=settings.symbols,
    )
    orchestrator = BootstrapOrchestrator(settings, logger)

    try:
        if parsed_args.list_modules:
            try:
                print_module_table(orchestrator.list_modules())
            except ResolverError as e:
                logger.error(e.diagnosis())
                return EXIT_RESOLVER_ERROR
            return 0
        if parsed_args.rollback:
            report = orchestrator.rollback_last_run()
        else:
            report = orchestrator.run(parsed_args.modules or None)
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return EXIT_INTERRUPTED
    except ResolverError as e:
        logger.error(e.diagnosis())
        return EXIT_RESOLVER_ERROR
    except Exception as e:
        logger.critical(f"Unexpected error: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
        return EXIT_FAILURE

    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
