import logging
import subprocess
from unittest.mock import MagicMock

import pytest

from common.command_utils import (
    command_exists,
    command_succeeds,
    has_sudo,
    log_message,
    run_command,
    run_elevated_command,
)


@pytest.fixture
def mock_subprocess_run(mocker):
    return mocker.patch("common.command_utils.subprocess.run")


def test_log_message_dispatches_by_level(mock_logger):
    log_message("careful", "warning", mock_logger)
    log_message("broken", "error", mock_logger)
    log_message("done", "success", mock_logger)
    log_message("noise", "debug", mock_logger)

    mock_logger.warning.assert_called_once_with("careful", exc_info=False)
    mock_logger.error.assert_called_once_with("broken", exc_info=False)
    mock_logger.info.assert_called_once_with("done", exc_info=False)
    mock_logger.debug.assert_called_once_with("noise", exc_info=False)


def test_run_command_success(mock_subprocess_run, settings, mock_logger):
    mock_subprocess_run.return_value = subprocess.CompletedProcess(
        args=["echo", "hi"], returncode=0, stdout="hi\n", stderr=""
    )
    result = run_command(
        ["echo", "hi"], settings, capture_output=True, current_logger=mock_logger
    )
    assert result.stdout == "hi\n"
    mock_subprocess_run.assert_called_once_with(
        ["echo", "hi"],
        check=True,
        shell=False,
        capture_output=True,
        text=True,
        input=None,
        cwd=None,
        env=None,
    )
    logged = " ".join(str(c.args[0]) for c in mock_logger.debug.call_args_list)
    assert "stdout: hi" in logged


def test_run_command_does_not_log_secret_output(mock_subprocess_run, settings, mock_logger):
    mock_subprocess_run.return_value = subprocess.CompletedProcess(
        args=["pass", "show", "x"], returncode=0, stdout="hunter2\n", stderr=""
    )
    run_command(
        ["pass", "show", "x"],
        settings,
        capture_output=True,
        current_logger=mock_logger,
        log_output=False,
    )
    logged = " ".join(str(c.args[0]) for c in mock_logger.debug.call_args_list)
    assert "hunter2" not in logged


def test_run_command_logs_and_reraises_failure(mock_subprocess_run, settings, mock_logger):
    mock_subprocess_run.side_effect = subprocess.CalledProcessError(
        2, ["false"], output="", stderr="boom"
    )
    with pytest.raises(subprocess.CalledProcessError):
        run_command(["false"], settings, current_logger=mock_logger)
    messages = [str(c.args[0]) for c in mock_logger.error.call_args_list]
    assert any("rc 2" in m for m in messages)
    assert any("stderr: boom" in m for m in messages)


def test_run_command_missing_executable(mock_subprocess_run, settings, mock_logger):
    mock_subprocess_run.side_effect = FileNotFoundError(2, "No such file", "nope")
    with pytest.raises(FileNotFoundError):
        run_command(["nope"], settings, current_logger=mock_logger)


def test_run_elevated_command_uses_sudo_when_not_root(mocker, settings):
    mocker.patch("common.command_utils.is_root", return_value=False)
    mock_run = mocker.patch("common.command_utils.run_command")
    run_elevated_command(["apt-get", "update"], settings)
    assert mock_run.call_args.args[0] == ["sudo", "apt-get", "update"]


def test_run_elevated_command_as_root(mocker, settings):
    mocker.patch("common.command_utils.is_root", return_value=True)
    mock_run = mocker.patch("common.command_utils.run_command")
    run_elevated_command(["apt-get", "update"], settings)
    assert mock_run.call_args.args[0] == ["apt-get", "update"]


def test_command_exists(mocker):
    mocker.patch("common.command_utils.shutil.which", side_effect=lambda c: "/usr/bin/git" if c == "git" else None)
    assert command_exists("git")
    assert not command_exists("chezmoi")


def test_command_succeeds(mock_subprocess_run, settings):
    mock_subprocess_run.return_value = subprocess.CompletedProcess(args=[], returncode=0)
    assert command_succeeds(["true"], settings)
    mock_subprocess_run.return_value = subprocess.CompletedProcess(args=[], returncode=1)
    assert not command_succeeds(["false"], settings)
    mock_subprocess_run.side_effect = FileNotFoundError(2, "missing", "x")
    assert not command_succeeds(["x"], settings)


def test_has_sudo(mocker, settings):
    mocker.patch("common.command_utils.command_exists", return_value=True)
    succeeds = mocker.patch("common.command_utils.command_succeeds", return_value=True)
    assert has_sudo(settings)

    # A password prompt is fine interactively but not unattended.
    succeeds.return_value = False
    assert not has_sudo(settings)
    assert has_sudo(settings.model_copy(update={"unattended": False}))


def test_has_sudo_without_sudo(mocker, settings):
    mocker.patch("common.command_utils.command_exists", return_value=False)
    assert not has_sudo(settings, MagicMock(spec=logging.Logger))
