# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Safe filesystem operations for ndengine.

The native-library cache relies on one rule: a cache entry either exists
completely or not at all. Everything is written into a temporary sibling
first and renamed into place. Rename on the same filesystem is atomic on
POSIX, so a crash mid-download leaves a stray temp entry, never a
half-populated cache directory.

Temp files and directories are handed out through context managers that
remove them on every exit path, including exceptions.
"""

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

TEMP_PREFIX = ".ndengine_tmp_"


def atomic_write_bytes(target_path: Path, data: bytes) -> None:
    """
    Write binary data to a file atomically.

    The data goes into a temp file in the target's directory, which is then
    renamed over the target. Writing in the same directory guarantees the
    rename stays on one filesystem.

    Args:
        target_path: Where the final file should end up.
        data: The raw bytes to write.

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd = tempfile.NamedTemporaryFile(
        mode="wb",
        dir=str(target_path.parent),
        prefix=TEMP_PREFIX,
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        temp_fd.write(data)
        temp_fd.flush()
        temp_fd.close()
        temp_path.replace(target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_move(source: Path, target: Path) -> None:
    """
    Rename `source` to `target` atomically.

    If the rename fails because another process already published `target`
    (two processes racing to fill the same cache entry), the existing target
    wins and `source` is left for the caller's cleanup to remove.

    Raises:
        OSError: If the rename fails and `target` does not exist.
    """
    try:
        source.rename(target)
    except OSError:
        if target.exists():
            return
        raise


def delete_tree(path: Path) -> bool:
    """
    Delete a file or a directory tree if it exists.

    Returns:
        True if something was deleted, False if the path didn't exist.
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


@contextmanager
def temporary_directory(parent: Path, prefix: str = TEMP_PREFIX) -> Iterator[Path]:
    """
    Create a temp directory inside `parent` and remove it on exit.

    If the body renamed the directory away, there is nothing left to remove.
    """
    parent.mkdir(parents=True, exist_ok=True)
    tmp_dir = Path(tempfile.mkdtemp(dir=str(parent), prefix=prefix))
    try:
        yield tmp_dir
    finally:
        if tmp_dir.exists():
            shutil.rmtree(tmp_dir)


@contextmanager
def temporary_file(parent: Path, prefix: str = TEMP_PREFIX, suffix: str = ".tmp") -> Iterator[Path]:
    """Create an empty temp file inside `parent` and remove it on exit."""
    parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        dir=str(parent), prefix=prefix, suffix=suffix, delete=False
    )
    handle.close()
    tmp_path = Path(handle.name)
    try:
        yield tmp_path
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
