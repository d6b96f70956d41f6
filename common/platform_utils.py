# common/platform_utils.py
# -*- coding: utf-8 -*-
"""
Operating system, distribution, architecture and package manager detection.
"""

import logging
import os
import platform
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

from common.command_utils import command_exists

module_logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")

_OS_NAMES = {
    "linux": "linux",
    "darwin": "darwin",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}

_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armv7",
    "armv6l": "armv6",
    "i386": "i386",
    "i686": "i386",
}

# distro ID -> candidate package managers, first available wins
_DISTRO_PACKAGE_MANAGERS = {
    "ubuntu": ("apt",),
    "debian": ("apt",),
    "linuxmint": ("apt",),
    "pop": ("apt",),
    "fedora": ("dnf", "yum"),
    "centos": ("dnf", "yum"),
    "rhel": ("dnf", "yum"),
    "rocky": ("dnf", "yum"),
    "almalinux": ("dnf", "yum"),
    "arch": ("pacman",),
    "manjaro": ("pacman",),
    "opensuse": ("zypper",),
    "opensuse-leap": ("zypper",),
    "opensuse-tumbleweed": ("zypper",),
    "suse": ("zypper",),
    "alpine": ("apk",),
    "darwin": ("brew",),
}


def detect_os() -> str:
    """linux, darwin, windows, *bsd or unknown."""
    system = platform.system().lower()
    if system.startswith(("cygwin", "mingw", "msys")) or system == "windows":
        return "windows"
    return _OS_NAMES.get(system, "unknown")


def read_os_release(path: Path = OS_RELEASE_PATH) -> Dict[str, str]:
    """Parse an os-release file into a dict; empty when it is missing."""
    values: Dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return values
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def detect_distro(os_release_path: Path = OS_RELEASE_PATH) -> str:
    """
    Lower-case distribution ID (``ubuntu``, ``fedora``...). Non-Linux systems
    report their OS name.
    """
    current_os = detect_os()
    if current_os != "linux":
        return current_os
    distro_id = read_os_release(os_release_path).get("ID", "").lower()
    if distro_id:
        return distro_id
    for marker, name in (
        ("/etc/debian_version", "debian"),
        ("/etc/redhat-release", "rhel"),
        ("/etc/arch-release", "arch"),
        ("/etc/alpine-release", "alpine"),
    ):
        if os.path.exists(marker):
            return name
    return "unknown"


def detect_distro_version(os_release_path: Path = OS_RELEASE_PATH) -> str:
    return read_os_release(os_release_path).get("VERSION_ID", "unknown")


def detect_arch() -> str:
    machine = platform.machine()
    return _ARCH_ALIASES.get(machine.lower(), machine or "unknown")


def get_package_manager(distro: Optional[str] = None) -> str:
    """
    Package manager command for ``distro`` (detected when omitted), or
    ``unknown`` when none of the candidates is installed.
    """
    distro = distro or detect_distro()
    candidates = _DISTRO_PACKAGE_MANAGERS.get(distro)
    if candidates is None and distro.startswith("opensuse"):
        candidates = ("zypper",)
    for candidate in candidates or ():
        if candidate == "apt":
            if command_exists("apt-get"):
                return "apt"
        elif command_exists(candidate):
            return candidate
    return "unknown"


def is_wsl() -> bool:
    for probe in ("/proc/sys/kernel/osrelease", "/proc/version"):
        try:
            if "microsoft" in Path(probe).read_text(encoding="utf-8").lower():
                return True
        except OSError:
            continue
    return bool(os.environ.get("WSL_DISTRO_NAME"))


def is_container() -> bool:
    if os.path.exists("/.dockerenv") or os.path.exists("/run/.containerenv"):
        return True
    try:
        cgroup = Path("/proc/1/cgroup").read_text(encoding="utf-8")
    except OSError:
        return False
    return any(marker in cgroup for marker in ("docker", "kubepods", "containerd", "lxc"))


def parse_version(version: str) -> Tuple[int, ...]:
    """Leading numeric components of ``version``: '2.39.2-1ubuntu' -> (2, 39, 2)."""
    match = re.match(r"^\D*(\d+(?:\.\d+)*)", version.strip())
    if not match:
        return ()
    return tuple(int(part) for part in match.group(1).split("."))


def version_at_least(actual: str, required: str) -> bool:
    """Compare dotted versions numerically, padding the shorter one with zeros."""
    have = parse_version(actual)
    need = parse_version(required)
    if not have:
        return False
    width = max(len(have), len(need))
    return have + (0,) * (width - len(have)) >= need + (0,) * (width - len(need))
