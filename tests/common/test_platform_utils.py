import pytest

from common.platform_utils import (
    detect_arch,
    detect_distro,
    detect_distro_version,
    detect_os,
    get_package_manager,
    is_wsl,
    parse_version,
    read_os_release,
    version_at_least,
)

UBUNTU_OS_RELEASE = """\
NAME="Ubuntu"
VERSION_ID="24.04"
ID=ubuntu
ID_LIKE=debian
# comment
"""


@pytest.fixture
def os_release(tmp_path):
    path = tmp_path / "os-release"
    path.write_text(UBUNTU_OS_RELEASE)
    return path


def test_read_os_release(os_release):
    values = read_os_release(os_release)
    assert values["ID"] == "ubuntu"
    assert values["VERSION_ID"] == "24.04"
    assert values["NAME"] == "Ubuntu"


def test_read_os_release_missing(tmp_path):
    assert read_os_release(tmp_path / "missing") == {}


def test_detect_os(mocker):
    mocker.patch("common.platform_utils.platform.system", return_value="Linux")
    assert detect_os() == "linux"
    mocker.patch("common.platform_utils.platform.system", return_value="Darwin")
    assert detect_os() == "darwin"
    mocker.patch("common.platform_utils.platform.system", return_value="MINGW64_NT-10.0")
    assert detect_os() == "windows"
    mocker.patch("common.platform_utils.platform.system", return_value="Plan9")
    assert detect_os() == "unknown"


def test_detect_distro_from_os_release(mocker, os_release):
    mocker.patch("common.platform_utils.detect_os", return_value="linux")
    assert detect_distro(os_release) == "ubuntu"
    assert detect_distro_version(os_release) == "24.04"


def test_detect_distro_non_linux(mocker, os_release):
    mocker.patch("common.platform_utils.detect_os", return_value="darwin")
    assert detect_distro(os_release) == "darwin"


def test_detect_distro_version_unknown(tmp_path):
    assert detect_distro_version(tmp_path / "missing") == "unknown"


def test_detect_arch(mocker):
    mocker.patch("common.platform_utils.platform.machine", return_value="AMD64")
    assert detect_arch() == "x86_64"
    mocker.patch("common.platform_utils.platform.machine", return_value="aarch64")
    assert detect_arch() == "arm64"
    mocker.patch("common.platform_utils.platform.machine", return_value="riscv64")
    assert detect_arch() == "riscv64"


def test_get_package_manager(mocker):
    available = {"apt-get", "dnf"}
    mocker.patch("common.platform_utils.command_exists", side_effect=lambda c: c in available)
    assert get_package_manager("ubuntu") == "apt"
    assert get_package_manager("fedora") == "dnf"
    assert get_package_manager("arch") == "unknown"
    assert get_package_manager("plan9") == "unknown"


def test_is_wsl_from_environment(mocker, monkeypatch):
    mocker.patch("common.platform_utils.Path.read_text", side_effect=OSError)
    monkeypatch.setenv("WSL_DISTRO_NAME", "Ubuntu")
    assert is_wsl()
    monkeypatch.delenv("WSL_DISTRO_NAME")
    assert not is_wsl()


@pytest.mark.parametrize(
    "version, expected",
    [
        ("2.39.2", (2, 39, 2)),
        ("v1.2", (1, 2)),
        ("5.2.21(1)-release", (5, 2, 21)),
        ("2.39.2-1ubuntu1", (2, 39, 2)),
        ("unknown", ()),
    ],
)
def test_parse_version(version, expected):
    assert parse_version(version) == expected


def test_version_at_least():
    assert version_at_least("2.25.0", "2.25")
    assert version_at_least("5.2.21(1)-release", "4.0")
    assert version_at_least("2.10", "2.9")
    assert not version_at_least("1.9.9", "2.0")
    assert not version_at_least("garbage", "1.0")
