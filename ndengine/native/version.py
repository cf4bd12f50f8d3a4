# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Engine version strings.

Published versions look like ``1.10.2``, ``1.10.2-xyz``, or carry build
metadata such as ``1.10.2-SNAPSHOT-7`` or ``1.8.1-20210421``. Only the
``MAJOR.MINOR.PATCH[-label]`` part names the artifacts on the repository,
so that is what canonicalization keeps.
"""

import re
from typing import NamedTuple, Optional

from ndengine.native.exceptions import InvalidVersionFormatError

VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+(-[a-z]+)?)(-SNAPSHOT)?(-\d+)?")


class VersionInfo(NamedTuple):
    """Parsed canonical version."""

    major: int
    minor: int
    patch: int
    label: Optional[str]


def canonicalize_version(version: str) -> str:
    """
    Strip snapshot and build suffixes from a version string.

    >>> canonicalize_version("1.10.2-xyz-SNAPSHOT-7")
    '1.10.2-xyz'

    Raises:
        InvalidVersionFormatError: If the string doesn't match the pattern.
    """
    match = VERSION_PATTERN.fullmatch(version)
    if match is None:
        raise InvalidVersionFormatError(f"Unexpected version: {version}")
    return match.group(1)


def parse_version(version: str) -> VersionInfo:
    """Parse a version string into its numeric parts and optional label."""
    canonical = canonicalize_version(version)
    numbers, _, label = canonical.partition("-")
    major, minor, patch = (int(part) for part in numbers.split("."))
    return VersionInfo(major=major, minor=minor, patch=patch, label=label or None)


def display_version(version: str) -> str:
    """Canonical form when the version parses, the raw string otherwise."""
    match = VERSION_PATTERN.fullmatch(version)
    return match.group(1) if match is not None else version


def uses_flavored_bundle_layout(version: str) -> bool:
    """
    Whether bundles for this version are laid out as `{engine}/{flavor}/{classifier}`.

    Releases after 1.10 (and the 1.10.2 patch) use the flavored layout,
    older ones keep everything under `native/lib`.
    """
    info = parse_version(version)
    return info.minor > 10 or (info.minor == 10 and info.patch == 2)
