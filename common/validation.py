# common/validation.py
# -*- coding: utf-8 -*-
"""
Input validation helpers.

Every ``validate_*`` function and ``is_safe_string`` is a pure predicate: it
takes a value, returns True or False and has no side effects (the optional
existence checks of ``validate_path`` only stat the file system). They guard
values that end up in generated configuration, file paths or command lines.

``sanitize_filename`` never raises; it always returns something usable as a
single path component.
"""

import ipaddress
import re
from pathlib import Path
from typing import Optional, Union

MAX_EMAIL_LENGTH = 254
MAX_URL_LENGTH = 2048
MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63
MAX_PATH_LENGTH = 4096
MAX_SAFE_STRING_LENGTH = 1024
MAX_IDENTIFIER_LENGTH = 64
MAX_FILENAME_LENGTH = 255
FILENAME_FALLBACK = "file"

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_URL_RE = re.compile(r"^https?://[a-zA-Z0-9.-]+(:[0-9]{1,5})?([/?#].*)?$")
_LABEL_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
_SEMVER_RE = re.compile(
    r"^(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)"
    r"(-[a-zA-Z0-9.-]+)?(\+[a-zA-Z0-9.-]+)?$"
)
_GIT_HTTPS_RE = re.compile(r"^https://[a-zA-Z0-9.-]+(:[0-9]+)?/[a-zA-Z0-9._/-]+?(\.git)?/?$")
_GIT_SSH_RE = re.compile(r"^(ssh://)?[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+[:/][a-zA-Z0-9._/-]+(\.git)?$")
_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_NUMERIC_RE = re.compile(r"^-?[0-9]+(\.[0-9]+)?$")

# Substrings that would let a value escape into a shell command.
_UNSAFE_SEQUENCES = ("$(", "`", ";", "|", "&", ">", "<", "\n", "\r", "\t", "\x00")
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"|?*\\/]')
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def validate_email(email: str) -> bool:
    """Address of the form local@domain.tld, at most 254 characters."""
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return False
    return bool(_EMAIL_RE.match(email))


def validate_url(url: str) -> bool:
    """http(s) URL with a plain host name, at most 2048 characters."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    return bool(_URL_RE.match(url)) and is_safe_string(url)


def validate_hostname(hostname: str) -> bool:
    if not hostname or len(hostname) > MAX_HOSTNAME_LENGTH:
        return False
    labels = hostname.split(".")
    return all(
        len(label) <= MAX_LABEL_LENGTH and _LABEL_RE.match(label)
        for label in labels
    )


def validate_port(port: Union[str, int]) -> bool:
    text = str(port)
    if not text.isdigit():
        return False
    return 1 <= int(text) <= 65535


def validate_ip(ip: str) -> bool:
    """Dotted-quad IPv4 address without leading zeros."""
    if not ip:
        return False
    try:
        ipaddress.IPv4Address(ip)
    except ValueError:
        return False
    return True


def validate_path(path: Union[str, Path], kind: str = "any") -> bool:
    """
    Reject paths that could traverse or smuggle control characters.

    Args:
        path: The candidate path.
        kind: ``"any"`` (existence not required), ``"file"`` or ``"dir"``
            (must exist as that type).
    """
    text = str(path)
    if not text or len(text) > MAX_PATH_LENGTH:
        return False
    if "\n" in text or "\r" in text or "\x00" in text or "//" in text:
        return False
    if ".." in Path(text).parts:
        return False
    if kind == "file":
        return Path(text).is_file()
    if kind == "dir":
        return Path(text).is_dir()
    return kind == "any"


def is_safe_string(value: str) -> bool:
    """True when ``value`` is non-empty, at most 1024 chars and free of shell metacharacters."""
    if not value or len(value) > MAX_SAFE_STRING_LENGTH:
        return False
    return not any(seq in value for seq in _UNSAFE_SEQUENCES)


def validate_version(version: str) -> bool:
    return bool(version) and bool(_SEMVER_RE.match(version))


def validate_git_repo(url: str) -> bool:
    """https, ssh:// or scp-style (git@host:path) repository URL."""
    if not url or not is_safe_string(url):
        return False
    return bool(_GIT_HTTPS_RE.match(url) or _GIT_SSH_RE.match(url))


def validate_shell_identifier(identifier: str) -> bool:
    if not identifier or len(identifier) > MAX_IDENTIFIER_LENGTH:
        return False
    return bool(_IDENTIFIER_RE.match(identifier))


def validate_numeric(
    value: Union[str, int, float],
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> bool:
    """Decimal number, optionally within an inclusive range."""
    text = str(value)
    if not _NUMERIC_RE.match(text):
        return False
    number = float(text)
    if minimum is not None and number < minimum:
        return False
    if maximum is not None and number > maximum:
        return False
    return True


def sanitize_filename(name: Optional[str], replacement: str = "_") -> str:
    """
    Turn arbitrary text into a safe single path component.

    Path separators, dots and the characters ``<>:"|?*`` become
    ``replacement``; control characters are dropped. The result is capped at
    255 characters and falls back to ``"file"`` when nothing usable is left.
    """
    if not name:
        return FILENAME_FALLBACK
    text = str(name)
    text = _CONTROL_CHARS.sub("", text)
    text = _UNSAFE_FILENAME_CHARS.sub(replacement, text)
    text = text.replace(".", replacement)
    if len(text) > MAX_FILENAME_LENGTH:
        text = text[: MAX_FILENAME_LENGTH - 3] + "..."
    if not text.strip(replacement + " "):
        return FILENAME_FALLBACK
    return text
