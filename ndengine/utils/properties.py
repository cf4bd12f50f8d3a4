# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Reader for the `key = value` properties files shipped in native bundles.

Bundles describe themselves with small properties files (the platform
descriptor and the bridge `jni_version`). Only the subset of the format
those files use is supported: one entry per line, `=` or `:` separators,
`#` and `!` comments, surrounding whitespace ignored.
"""

from pathlib import Path


def parse_properties(text: str) -> dict[str, str]:
    """Parse properties text into a dict. Later keys override earlier ones."""
    entries: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        separators = [idx for idx in (line.find("="), line.find(":")) if idx != -1]
        if not separators:
            entries[line] = ""
            continue
        split_at = min(separators)
        entries[line[:split_at].strip()] = line[split_at + 1:].strip()
    return entries


def read_properties(path: Path) -> dict[str, str]:
    """
    Read a properties file from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Properties file not found: {path}")
    return parse_properties(path.read_text(encoding="utf-8"))
