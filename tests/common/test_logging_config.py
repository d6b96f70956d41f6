import logging

from common.errors import ExecutionError, ResolverError
from common.logging_config import SymbolFormatter, setup_logging


def _record(level, message="hello"):
    return logging.LogRecord("test", level, __file__, 1, message, None, None)


def test_symbol_formatter_uses_level_symbol():
    formatter = SymbolFormatter(fmt="%(symbol)s %(message)s", symbols={"warning": "W"})
    assert formatter.format(_record(logging.WARNING)) == "W hello"
    assert formatter.format(_record(logging.INFO)) == " hello"


def test_setup_logging_replaces_handlers(tmp_path):
    log_file = tmp_path / "logs" / "bootstrap.log"
    setup_logging(verbose=True, log_file=log_file, log_prefix="[MR]")
    logger = setup_logging(verbose=False, log_file=log_file, log_prefix="[MR]")

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(root.handlers) == 2
    assert "[MR] " in root.handlers[0].formatter._fmt

    logger.info("written to file")
    for handler in root.handlers:
        handler.flush()
    assert "written to file" in log_file.read_text()


def test_setup_logging_without_console():
    setup_logging(log_to_console=False)
    assert all(isinstance(h, logging.NullHandler) for h in logging.getLogger().handlers)


def test_error_diagnosis():
    error = ExecutionError("apt-get install failed", module_id="20-system-packages", returncode=100)
    assert error.diagnosis() == "[20-system-packages] apt-get install failed (exit status 100)"
    assert ResolverError("cycle").diagnosis() == "cycle"
