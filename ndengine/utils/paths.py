# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Path utilities for ndengine.

All cache path helpers live here. The rules:
  - the cache root comes from ENGINE_CACHE_DIR, then config, then the home dir
  - every engine gets its own subdirectory
  - names taken from remote manifests must not escape their target directory
"""

import os
from pathlib import Path
from typing import Optional

CACHE_DIR_ENV = "ENGINE_CACHE_DIR"
DEFAULT_CACHE_DIR = Path.home() / ".ndengine" / "cache"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory (and parents) if it doesn't exist. Returns the path for chaining.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_root(configured: Optional[str] = None) -> Path:
    """
    Resolve the root of the native library cache.

    Precedence: ENGINE_CACHE_DIR environment variable, then the configured
    value, then ~/.ndengine/cache. The directory is not created here.
    """
    from_env = os.environ.get(CACHE_DIR_ENV)
    if from_env:
        return Path(from_env).expanduser()
    if configured:
        return Path(configured).expanduser()
    return DEFAULT_CACHE_DIR


def get_engine_cache_dir(engine: str, configured: Optional[str] = None) -> Path:
    """Return `{cache_root}/{engine}`."""
    return get_cache_root(configured) / engine


def validate_path_within(target: Path, root: Path) -> Path:
    """
    Make sure a path doesn't escape `root`.

    Both paths are resolved before comparing, so names like
    ``../../etc/passwd`` coming from a remote listing get caught.

    Returns:
        The resolved absolute path if it's safe.

    Raises:
        ValueError: If the path escapes the root.
    """
    resolved_target = target.resolve()
    resolved_root = root.resolve()

    if resolved_target != resolved_root and resolved_root not in resolved_target.parents:
        raise ValueError(
            f"Path '{target}' resolves to '{resolved_target}' which is outside "
            f"'{resolved_root}'. This is not allowed."
        )

    return resolved_target
