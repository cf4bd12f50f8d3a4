# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
File helpers for block parameters.

The whole block is encoded in memory first and then written atomically,
so a failed save never leaves a partial parameter file behind.
"""

import io
import logging
from pathlib import Path

from ndengine.logging.logger import get_logger
from ndengine.nn.block import Block
from ndengine.nn.exceptions import MalformedModelError
from ndengine.utils.filesystem import atomic_write_bytes

logger: logging.Logger = get_logger(__name__)


def save_block(block: Block, path: Path) -> int:
    """
    Save `block`'s parameters to `path`.

    Returns:
        Number of bytes written.
    """
    buffer = io.BytesIO()
    block.save_parameters(buffer)
    data = buffer.getvalue()
    atomic_write_bytes(Path(path), data)
    logger.info("Saved block parameters", extra={"path": str(path), "bytes": len(data)})
    return len(data)


def load_block(block: Block, path: Path) -> None:
    """
    Load parameters from `path` into `block`, whose structure must match.

    Raises:
        FileNotFoundError: If `path` does not exist.
        MalformedModelError: If the file does not match the block or has trailing bytes.
    """
    with open(path, "rb") as handle:
        block.load_parameters(handle)
        if handle.read(1):
            raise MalformedModelError(f"Trailing data after block parameters in {path}")
    logger.info("Loaded block parameters", extra={"path": str(path)})
