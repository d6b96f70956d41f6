import subprocess

from common.git_utils import (
    clone_or_pull,
    default_identity,
    get_git_config,
    init_repo,
    resolve_git_identity,
)
from conftest import completed


def test_get_git_config(mocker, settings):
    mocker.patch("common.git_utils.run_command", return_value=completed(stdout="Ada\n"))
    assert get_git_config("user.name", settings) == "Ada"
    mocker.patch("common.git_utils.run_command", return_value=completed(returncode=1))
    assert get_git_config("user.name", settings) is None
    mocker.patch("common.git_utils.run_command", side_effect=FileNotFoundError)
    assert get_git_config("user.name", settings) is None


def test_clone_when_missing(mocker, settings, tmp_path):
    run = mocker.patch("common.git_utils.run_command", return_value=completed())
    repo = tmp_path / "git" / "dotfiles"
    assert clone_or_pull("https://example.com/u/dotfiles.git", repo, settings)
    assert run.call_args.args[0] == ["git", "clone", "https://example.com/u/dotfiles.git", str(repo)]
    assert repo.parent.is_dir()


def test_clone_refuses_non_empty_directory(mocker, settings, tmp_path):
    run = mocker.patch("common.git_utils.run_command")
    repo = tmp_path / "dotfiles"
    repo.mkdir()
    (repo / "stray").write_text("x")
    assert not clone_or_pull("https://example.com/u/dotfiles.git", repo, settings)
    run.assert_not_called()


def test_pull_failure_keeps_checkout(mocker, settings, tmp_path):
    repo = tmp_path / "dotfiles"
    (repo / ".git").mkdir(parents=True)
    mocker.patch(
        "common.git_utils.run_command",
        side_effect=[completed(), subprocess.CalledProcessError(1, ["git", "pull"])],
    )
    assert clone_or_pull("https://example.com/u/dotfiles.git", repo, settings)


def test_init_repo_sets_local_identity(mocker, settings, tmp_path):
    run = mocker.patch("common.git_utils.run_command", return_value=completed())
    source = tmp_path / "source"
    init_repo(source, settings, name="Ada", email="ada@example.com")
    commands = [c.args[0] for c in run.call_args_list]
    assert commands == [
        ["git", "init", "-q"],
        ["git", "config", "user.name", "Ada"],
        ["git", "config", "user.email", "ada@example.com"],
    ]
    assert all(c.kwargs["cwd"] == str(source) for c in run.call_args_list)


def test_resolve_git_identity_prefers_settings(mocker, settings):
    lookup = mocker.patch("common.git_utils.get_git_config")
    assert resolve_git_identity(settings) == ("Test User", "test@example.com")
    lookup.assert_not_called()


def test_resolve_git_identity_falls_back(mocker, settings):
    bare = settings.model_copy(update={"git_name": None, "git_email": None})
    mocker.patch("common.git_utils.get_git_config", return_value=None)
    mocker.patch("common.git_utils.getpass.getuser", return_value="ada")
    assert resolve_git_identity(bare) == ("ada", None)


def test_default_identity(mocker):
    mocker.patch("common.git_utils.getpass.getuser", return_value="ada")
    mocker.patch("common.git_utils.socket.gethostname", return_value="box")
    assert default_identity() == ("ada", "ada@box")
