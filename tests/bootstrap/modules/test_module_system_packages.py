import pytest

from bootstrap.modules.system_packages import SystemPackagesModule
from conftest import FakePackageManager, completed
from setup.config_models import BootstrapSettings

PREFIX = "bootstrap.modules.system_packages"


@pytest.fixture
def tools(mocker):
    """Every command present, every command succeeding."""
    mocker.patch(f"{PREFIX}.command_exists", return_value=True)
    mocker.patch(f"{PREFIX}.command_succeeds", return_value=True)
    mocker.patch(f"{PREFIX}.run_command", return_value=completed(stdout="git version 2.43.0\n"))


def _module(settings, context, logger, manager):
    context.run_state.begin_run(["20-system-packages"])
    module = SystemPackagesModule(settings, context, logger)
    module._package_manager = manager
    context.ensure_backup_set()
    return module


def test_validate(mocker, tools, settings, context, mock_logger):
    mocker.patch(f"{PREFIX}.is_root", return_value=False)
    mocker.patch(f"{PREFIX}.has_sudo", return_value=True)
    module = _module(settings, context, mock_logger, FakePackageManager())
    assert module.validate()


def test_validate_without_package_manager(mocker, settings, context, mock_logger):
    mocker.patch(f"{PREFIX}.PackageManager", side_effect=FileNotFoundError("no apt-get"))
    assert not SystemPackagesModule(settings, context, mock_logger).validate()


def test_validate_without_sudo(mocker, tools, settings, context, mock_logger):
    mocker.patch(f"{PREFIX}.is_root", return_value=False)
    mocker.patch(f"{PREFIX}.has_sudo", return_value=False)
    module = _module(settings, context, mock_logger, FakePackageManager())
    assert not module.validate()


def test_connectivity_failure_only_warns_unattended(mocker, tools, settings, context, mock_logger):
    mocker.patch(f"{PREFIX}.is_root", return_value=True)
    mocker.patch(f"{PREFIX}.command_succeeds", return_value=False)
    module = _module(settings, context, mock_logger, FakePackageManager())
    assert module.validate()
    mock_logger.warning.assert_called()


def test_execute_installs_missing_and_records(tools, settings, context, mock_logger):
    manager = FakePackageManager(installed={"git", "curl"})
    module = _module(settings, context, mock_logger, manager)

    assert module.execute()

    assert set(settings.essential_packages) <= manager.installed
    assert "jq" in manager.installed
    assert "git" not in module.installed
    record = module.record_path.read_text().splitlines()
    assert record[0] == "# Installed by 20-system-packages"
    assert "pass" in record
    assert context.data["installed_packages"] == module.installed


def test_execute_skips_development_group(tools, home, context, mock_logger):
    settings = BootstrapSettings(home=home, unattended=True, install_development_packages=False)
    manager = FakePackageManager()
    module = _module(settings, context, mock_logger, manager)
    assert module.execute()
    assert "build-essential" not in manager.installed


def test_essential_failure_fails_execute(tools, settings, context, mock_logger):
    manager = FakePackageManager(broken={"pass"})
    module = _module(settings, context, mock_logger, manager)

    assert not module.execute()

    assert "pass" in module.failed
    assert "curl" in module.record_path.read_text()


def test_optional_group_failure_only_warns(tools, settings, context, mock_logger):
    manager = FakePackageManager(broken={"gitleaks"})
    module = _module(settings, context, mock_logger, manager)
    assert module.execute()
    assert module.failed == ["gitleaks"]


def test_chezmoi_installed_into_local_bin(mocker, settings, context, mock_logger):
    mocker.patch(f"{PREFIX}.command_exists", side_effect=lambda cmd: cmd != "chezmoi")
    mocker.patch(f"{PREFIX}.command_succeeds", return_value=True)

    def fake_run(command, *args, **kwargs):
        if command[0] == "sh":
            (settings.local_bin / "chezmoi").write_text("#!/bin/sh\n")
        return completed(stdout="installer script")

    run = mocker.patch(f"{PREFIX}.run_command", side_effect=fake_run)
    module = _module(settings, context, mock_logger, FakePackageManager(installed=settings.essential_packages))

    assert module.execute()

    assert "bin:chezmoi" in module.installed
    sh_call = next(c for c in run.call_args_list if c.args[0][0] == "sh")
    assert sh_call.args[0] == ["sh", "-s", "--", "-b", str(settings.local_bin)]
    assert sh_call.kwargs["cmd_input"] == "installer script"


def test_verify(tools, settings, context, mock_logger):
    manager = FakePackageManager(installed=settings.essential_packages)
    module = _module(settings, context, mock_logger, manager)
    assert module.verify()

    manager.installed.discard("gnupg")
    assert not module.verify()


def test_verify_accepts_local_bin_chezmoi(mocker, settings, context, mock_logger):
    mocker.patch(f"{PREFIX}.command_exists", side_effect=lambda cmd: cmd != "chezmoi")
    settings.local_bin.mkdir(parents=True)
    (settings.local_bin / "chezmoi").write_text("")
    module = _module(settings, context, mock_logger, FakePackageManager(installed=settings.essential_packages))
    assert module.verify()


def _write_record(module, *entries):
    module.record_path.write_text("# Installed by 20-system-packages\n" + "\n".join(entries) + "\n")


def test_rollback_leaves_packages_without_force(tools, settings, context, mock_logger):
    manager = FakePackageManager()
    module = _module(settings, context, mock_logger, manager)
    _write_record(module, "jq")
    assert module.rollback()
    assert manager.removed == []


def test_forced_rollback_removes_what_was_installed(mocker, home, context, mock_logger):
    settings = BootstrapSettings(home=home, unattended=True, force_package_rollback=True)
    succeeds = mocker.patch(f"{PREFIX}.command_succeeds", return_value=True)
    manager = FakePackageManager(installed={"jq", "git"})
    module = _module(settings, context, mock_logger, manager)
    settings.local_bin.mkdir(parents=True)
    (settings.local_bin / "chezmoi").write_text("")
    _write_record(module, "jq", "pipx:pre-commit", "bin:chezmoi")

    assert module.rollback()

    assert manager.removed == ["jq"]
    assert "git" in manager.installed
    succeeds.assert_called_once()
    assert succeeds.call_args.args[0] == ["pipx", "uninstall", "pre-commit"]
    assert not (settings.local_bin / "chezmoi").exists()


def test_rollback_without_record(settings, context, mock_logger):
    module = SystemPackagesModule(settings, context, mock_logger)
    assert module.rollback()
