# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Runtime bootstrap for ndengine.

One-time setup before a command touches native libraries:
  1. Validate the Python version
  2. Seed random and torch
  3. Initialize the logger
  4. Make sure the cache root exists
"""

import os
import random
from pathlib import Path
from typing import Optional

import torch

from ndengine.config.schema import EngineConfig, GlobalConfig
from ndengine.logging.logger import get_logger
from ndengine.runtime.environment import check_minimum_python, get_system_info
from ndengine.utils.paths import ensure_directory, get_cache_root


def set_deterministic_seed(seed: int) -> None:
    """
    Seed Python's random module and torch (CPU and every CUDA device).

    Parameter initialization draws from torch, so a fixed seed gives
    reproducible blocks.
    """
    random.seed(seed)
    os.environ["PYTHONHASHSEED"] = str(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


def bootstrap(config: GlobalConfig, engine_config: Optional[EngineConfig] = None) -> Path:
    """
    Run the bootstrap sequence.

    Args:
        config: The validated global configuration.
        engine_config: Engine settings, used to locate the cache root.

    Returns:
        The cache root, created if it was missing.
    """
    check_minimum_python()
    set_deterministic_seed(config.seed)

    log_file = Path(config.log_file) if config.log_file is not None else None
    logger = get_logger("ndengine.runtime", log_level=config.log_level, log_file=log_file)

    cache_root = ensure_directory(
        get_cache_root(engine_config.cache_dir if engine_config is not None else None)
    )

    system_info = get_system_info()
    logger.info(
        "ndengine bootstrap complete",
        extra={
            "seed": config.seed,
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
            "cache_root": str(cache_root),
        },
    )
    return cache_root
