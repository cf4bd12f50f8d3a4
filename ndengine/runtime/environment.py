# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Environment detection for ndengine.

Native artifacts are published per operating system and CPU architecture.
This module turns what Python reports about the host into the identifiers
the artifact repository uses ("linux", "x86_64", "linux-x86_64") and maps
library base names to the file names the platform's dynamic linker expects.
"""

import platform
import sys
from typing import NamedTuple, Optional

MINIMUM_PYTHON_MAJOR = 3
MINIMUM_PYTHON_MINOR = 11

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "x86_64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


class SystemInfo(NamedTuple):
    """Snapshot of the current system environment."""

    python_version: str
    platform: str
    architecture: str
    hostname: str


def get_python_version() -> tuple[int, int, int]:
    """Return the current Python version as a (major, minor, micro) tuple."""
    return sys.version_info[:3]


def check_minimum_python() -> None:
    """
    Verify we're running Python 3.11+.

    Raises:
        RuntimeError: If Python version is below 3.11.
    """
    major, minor, _ = get_python_version()
    if major < MINIMUM_PYTHON_MAJOR or (
        major == MINIMUM_PYTHON_MAJOR and minor < MINIMUM_PYTHON_MINOR
    ):
        raise RuntimeError(
            f"ndengine requires Python >= {MINIMUM_PYTHON_MAJOR}.{MINIMUM_PYTHON_MINOR}, "
            f"but you're running {major}.{minor}. Please upgrade."
        )


def get_system_info() -> SystemInfo:
    """Collect basic system information for logging and diagnostics."""
    return SystemInfo(
        python_version=platform.python_version(),
        platform=platform.system(),
        architecture=platform.machine(),
        hostname=platform.node(),
    )


def detect_os_prefix(system_name: Optional[str] = None) -> str:
    """
    Map the OS name to the artifact repository's prefix: linux, osx or win.

    Raises:
        RuntimeError: For operating systems no engine publishes binaries for.
    """
    name = (system_name if system_name is not None else platform.system()).lower()
    if name.startswith("win"):
        return "win"
    if name.startswith("darwin") or name.startswith("mac"):
        return "osx"
    if name.startswith("linux"):
        return "linux"
    raise RuntimeError(f"Unsupported operating system: {name}")


def detect_os_arch(machine: Optional[str] = None) -> str:
    """Normalize the CPU architecture name (amd64 -> x86_64, arm64 -> aarch64)."""
    arch = (machine if machine is not None else platform.machine()).lower()
    return _ARCH_ALIASES.get(arch, arch)


def host_classifier(os_prefix: Optional[str] = None, os_arch: Optional[str] = None) -> str:
    """Return the `{os_prefix}-{os_arch}` classifier of the host."""
    prefix = os_prefix if os_prefix is not None else detect_os_prefix()
    arch = os_arch if os_arch is not None else detect_os_arch()
    return f"{prefix}-{arch}"


def map_library_name(name: str, os_prefix: Optional[str] = None) -> str:
    """
    Turn a library base name into the platform's file name.

    `torch` becomes libtorch.so on linux, libtorch.dylib on osx and
    torch.dll on windows.
    """
    prefix = os_prefix if os_prefix is not None else detect_os_prefix()
    if prefix == "win":
        return f"{name}.dll"
    if prefix == "osx":
        return f"lib{name}.dylib"
    return f"lib{name}.so"
