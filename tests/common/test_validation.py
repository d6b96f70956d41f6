import pytest

from common.validation import (
    is_safe_string,
    sanitize_filename,
    validate_email,
    validate_git_repo,
    validate_hostname,
    validate_ip,
    validate_numeric,
    validate_path,
    validate_port,
    validate_shell_identifier,
    validate_url,
    validate_version,
)


@pytest.mark.parametrize(
    "email, expected",
    [
        ("user@example.com", True),
        ("first.last+tag@sub.example.org", True),
        ("no-at-sign.example.com", False),
        ("user@host", False),
        ("", False),
        ("a" * 250 + "@example.com", False),
    ],
)
def test_validate_email(email, expected):
    assert validate_email(email) is expected


def test_validate_url():
    assert validate_url("https://get.chezmoi.io")
    assert validate_url("http://localhost:8080/path?q=1")
    assert not validate_url("ftp://example.com")
    assert not validate_url("https://example.com/$(reboot)")


def test_validate_hostname_and_ip():
    assert validate_hostname("workstation-01.local")
    assert not validate_hostname("-bad.example")
    assert validate_ip("192.168.1.10")
    assert not validate_ip("256.1.1.1")
    assert not validate_ip("01.2.3.4")


def test_validate_port():
    assert validate_port(22)
    assert validate_port("65535")
    assert not validate_port(0)
    assert not validate_port("http")


def test_validate_path(tmp_path):
    existing = tmp_path / "file"
    existing.write_text("x")
    assert validate_path(existing, "file")
    assert validate_path(tmp_path, "dir")
    assert not validate_path(tmp_path, "file")
    assert validate_path("relative/path")
    assert not validate_path("../etc/passwd")
    assert not validate_path("bad\npath")
    assert not validate_path("/double//slash")


def test_is_safe_string():
    assert is_safe_string("Ada Lovelace")
    for value in ("a;b", "$(id)", "`id`", "a|b", "a && b", "line\nbreak", ""):
        assert not is_safe_string(value)


def test_validate_version():
    assert validate_version("1.2.3")
    assert validate_version("2.0.0-rc.1+build.5")
    assert not validate_version("1.2")
    assert not validate_version("01.2.3")


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://github.com/user/dotfiles.git", True),
        ("https://github.com/user/dotfiles", True),
        ("git@github.com:user/dotfiles.git", True),
        ("ssh://git@github.com/user/dotfiles.git", True),
        ("file:///tmp/repo", False),
        ("https://github.com/user/repo;rm -rf ~", False),
    ],
)
def test_validate_git_repo(url, expected):
    assert validate_git_repo(url) is expected


def test_validate_shell_identifier():
    assert validate_shell_identifier("GITHUB_TOKEN")
    assert validate_shell_identifier("_private")
    assert not validate_shell_identifier("1ABC")
    assert not validate_shell_identifier("WITH-DASH")


def test_validate_numeric():
    assert validate_numeric("42")
    assert validate_numeric("-3.5", minimum=-4)
    assert not validate_numeric("10", maximum=5)
    assert not validate_numeric("1e5")


def test_sanitize_filename():
    assert sanitize_filename("my/file:name") == "my_file_name"
    assert sanitize_filename("report.txt") == "report_txt"
    assert sanitize_filename("") == "file"
    assert sanitize_filename("...") == "file"
    assert len(sanitize_filename("x" * 300)) == 255
