# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the ndengine CLI.

Each function here corresponds to one CLI subcommand and returns an exit
code. No print() calls; everything goes through the structured logger.
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

from ndengine.cli.exit_codes import CONFIG_ERROR, RUNTIME_ERROR, SUCCESS, USER_ERROR
from ndengine.config.exceptions import ConfigError
from ndengine.config.loader import load_config
from ndengine.config.schema import EngineConfig
from ndengine.logging.logger import get_logger
from ndengine.native.bridge import bridge_cache_path, find_bridge_library
from ndengine.native.cuda import TorchGpuProbe
from ndengine.native.engines import EngineSpec, get_engine, list_engines
from ndengine.native.exceptions import InvalidVersionFormatError, NativeEngineError
from ndengine.native.fetcher import cache_entry_dir
from ndengine.native.library import find_native_library, find_override_library, load_library
from ndengine.native.platform import LibraryInfo, Platform, detect_platform
from ndengine.native.resolver import (
    LEGACY_ABI_MARKER,
    resolve_flavor,
    resolve_version_override,
    with_precxx11,
)
from ndengine.runtime.bootstrap import bootstrap
from ndengine.runtime.environment import get_system_info
from ndengine.utils.paths import get_engine_cache_dir


def _load_and_bootstrap(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, Optional[EngineConfig], logging.Logger]:
    """
    Shared setup: load config, pick the engine, run bootstrap.

    Returns (exit_code, engine_config, logger). A non-SUCCESS exit code
    means setup failed and the caller should return it right away.
    """
    logger = get_logger(f"ndengine.cli.{command_name}", log_level=args.log_level)

    config = None
    if args.config is not None:
        try:
            config = load_config(Path(args.config))
        except ConfigError as err:
            logger.error(
                "Configuration error",
                extra={"command": command_name, "error": str(err)},
            )
            return CONFIG_ERROR, None, logger

    engine_config = config.engine_or_default() if config is not None else EngineConfig()
    if args.engine is not None:
        engine_config = engine_config.model_copy(update={"name": args.engine})

    if engine_config.name not in list_engines():
        logger.error(
            "Unknown engine",
            extra={"engine": engine_config.name, "available": list_engines()},
        )
        return USER_ERROR, None, logger

    if config is not None:
        bootstrap(config.global_config, engine_config)
    else:
        logger.debug("No config provided, running with defaults", extra={"command": command_name})

    return SUCCESS, engine_config, logger


def _resolve(spec: EngineSpec, config: EngineConfig) -> tuple[Platform, LibraryInfo, bool]:
    """
    The build `load` would use, without touching the network or the cache.

    Returns the detected platform, the library location and whether that
    location is a prebuilt library found through the library path.
    """
    probe = TorchGpuProbe()
    platform = detect_platform(spec, config, gpu_probe=probe)
    prebuilt = find_override_library(spec, config, platform, probe)
    if prebuilt is not None:
        return platform, prebuilt, True

    override = resolve_version_override(spec, config, platform.version)
    if override is not None:
        platform = detect_platform(spec, config, override_version=override, gpu_probe=probe)
        flavor = resolve_flavor(spec, config, platform, probe)
    elif platform.placeholder:
        flavor = resolve_flavor(spec, config, platform, probe)
    elif LEGACY_ABI_MARKER in platform.libraries:
        flavor = with_precxx11(platform.flavor)
    else:
        flavor = platform.flavor

    info = LibraryInfo(
        directory=cache_entry_dir(
            get_engine_cache_dir(spec.name, config.cache_dir),
            platform.version,
            flavor,
            platform.classifier,
        ),
        version=platform.version,
        api_version=platform.api_version,
        flavor=flavor,
        classifier=platform.classifier,
    )
    return platform, info, False


def _runtime_failure(logger: logging.Logger, command_name: str, err: Exception) -> int:
    if isinstance(err, InvalidVersionFormatError):
        logger.error("Invalid engine version", extra={"command": command_name, "error": str(err)})
        return USER_ERROR
    logger.error(
        "Runtime error",
        extra={"command": command_name, "error": str(err)},
        exc_info=True,
    )
    return RUNTIME_ERROR


def handle_info(args: argparse.Namespace) -> int:
    """Log system information and the platform detected for the engine."""
    exit_code, config, logger = _load_and_bootstrap(args, "info")
    if exit_code != SUCCESS:
        return exit_code

    system_info = get_system_info()
    logger.info(
        "System information",
        extra={
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
            "hostname": system_info.hostname,
            "engines": list_engines(),
        },
    )
    try:
        spec = get_engine(config.name)
        platform = detect_platform(spec, config, gpu_probe=TorchGpuProbe())
    except (NativeEngineError, OSError) as err:
        return _runtime_failure(logger, "info", err)

    logger.info(
        "Detected platform",
        extra={
            "engine": spec.name,
            "version": platform.version,
            "flavor": platform.flavor,
            "classifier": platform.classifier,
            "api_version": platform.api_version,
            "placeholder": platform.placeholder,
        },
    )
    return SUCCESS


def handle_resolve(args: argparse.Namespace) -> int:
    """Log the final version, flavor, classifier and library location. No network access."""
    exit_code, config, logger = _load_and_bootstrap(args, "resolve")
    if exit_code != SUCCESS:
        return exit_code

    try:
        spec = get_engine(config.name)
        _, info, prebuilt = _resolve(spec, config)
    except (NativeEngineError, OSError) as err:
        return _runtime_failure(logger, "resolve", err)

    logger.info(
        "Resolved engine build",
        extra={
            "engine": spec.name,
            "version": info.version,
            "flavor": info.flavor,
            "classifier": info.classifier,
            "path": str(info.directory),
            "prebuilt": prebuilt,
        },
    )
    return SUCCESS


def handle_fetch(args: argparse.Namespace) -> int:
    """Populate the cache with the engine and its bridge without loading them."""
    exit_code, config, logger = _load_and_bootstrap(args, "fetch")
    if exit_code != SUCCESS:
        return exit_code

    try:
        spec = get_engine(config.name)
        if args.dry_run:
            _, info, prebuilt = _resolve(spec, config)
            logger.info(
                "Dry run, would fetch",
                extra={
                    "engine": spec.name,
                    "build": f"{info.version}-{info.flavor}-{info.classifier}",
                    "prebuilt": prebuilt,
                },
            )
            return SUCCESS

        probe = TorchGpuProbe()
        platform = detect_platform(spec, config, gpu_probe=probe)
        info: Optional[LibraryInfo] = find_override_library(spec, config, platform, probe)
        if info is None:
            info = find_native_library(spec, config, platform, probe)
        bridge = find_bridge_library(info, spec, config, platform.os_prefix)
    except (NativeEngineError, OSError) as err:
        return _runtime_failure(logger, "fetch", err)

    logger.info(
        "Fetch complete",
        extra={"engine": spec.name, "path": str(info.directory), "bridge": str(bridge)},
    )
    return SUCCESS


def handle_load(args: argparse.Namespace) -> int:
    """Fetch if needed and load the engine into this process."""
    exit_code, config, logger = _load_and_bootstrap(args, "load")
    if exit_code != SUCCESS:
        return exit_code

    try:
        spec = get_engine(config.name)
        if args.dry_run:
            platform, info, prebuilt = _resolve(spec, config)
            logger.info(
                "Dry run, would load",
                extra={
                    "engine": spec.name,
                    "path": str(info.directory),
                    "prebuilt": prebuilt,
                    "bridge": str(bridge_cache_path(info, spec, config, platform.os_prefix)),
                },
            )
            return SUCCESS

        info = load_library(spec.name, config)
    except (NativeEngineError, OSError) as err:
        return _runtime_failure(logger, "load", err)

    logger.info(
        "Load complete",
        extra={"engine": spec.name, "version": info.version, "flavor": info.flavor},
    )
    return SUCCESS
