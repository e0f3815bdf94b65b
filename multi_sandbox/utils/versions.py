"""Database server versions and values derived from them."""

import typing as tp

from packaging import version

# First version with the X protocol plugin enabled by default
MYSQLX_MIN_VERSION: tp.Final[str] = "8.0.11"


def parse_version(version_str: str) -> version.Version:
    """Parse `major.minor.rev` version string.

    Raises `ValueError` when the version is not in the `major.minor.rev` format.
    """
    try:
        parsed = version.Version(version_str)
    except version.InvalidVersion as exc:
        msg = f"Invalid version '{version_str}'"
        raise ValueError(msg) from exc

    if len(parsed.release) != 3 or parsed.epoch or parsed.base_version != str(parsed):
        msg = f"Invalid version '{version_str}': expected format 'major.minor.rev'"
        raise ValueError(msg)

    return parsed


def version_to_list(version_str: str) -> tuple[int, int, int]:
    """Return `(major, minor, rev)` tuple.

    >>> version_to_list("5.7.22")
    (5, 7, 22)
    """
    major, minor, rev = parse_version(version_str).release
    return major, minor, rev


def version_to_name(version_str: str) -> str:
    """Return version usable as a part of a directory name.

    >>> version_to_name("8.0.11")
    '8_0_11'
    """
    return "_".join(str(v) for v in version_to_list(version_str))


def version_to_port(version_str: str) -> int:
    """Return port number derived from version.

    >>> version_to_port("5.7.22")
    5722
    """
    major, minor, rev = version_to_list(version_str)
    return int(f"{major}{minor}{rev:02d}")


def greater_or_equal(version_str: str, min_version: str) -> bool:
    return parse_version(version_str) >= parse_version(min_version)


def supports_mysqlx(version_str: str) -> bool:
    """Check if the version comes with the X protocol (the auxiliary port family)."""
    return greater_or_equal(version_str, MYSQLX_MIN_VERSION)
