# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Entry point for loading a native engine.

The search order for the engine's libraries:
  1. a prebuilt library in {PREFIX}_LIBRARY_PATH, then in the configured
     library_path;
  2. an explicit version override that differs from the bundle: download;
  3. no bundle descriptor (placeholder platform): download;
  4. otherwise: copy the bundled files into the cache.

The libraries are then loaded in dependency order, followed by the bridge
library. The whole sequence runs under one process-wide lock and is
recorded in the context, so it happens exactly once per engine per
process; later calls from any thread return the recorded result.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from ndengine.config.schema import EngineConfig
from ndengine.logging.logger import get_logger
from ndengine.native.bridge import find_bridge_library
from ndengine.native.cuda import GpuProbe, TorchGpuProbe
from ndengine.native.engines import EngineSpec, get_engine
from ndengine.native.fetcher import (
    copy_bundled_native_library,
    download_native_library,
    find_library_in_path,
    native_file_name,
)
from ndengine.native.loader import LoadFn, load_engine_libraries, load_native_library
from ndengine.native.platform import LibraryInfo, Platform, detect_platform, probe_flavor
from ndengine.native.repository import ArtifactRepository
from ndengine.native.resolver import (
    env_name,
    resolve_flavor,
    resolve_override,
    resolve_version_override,
    with_precxx11,
)
from ndengine.native.version import display_version
from ndengine.runtime.context import get_context

logger: logging.Logger = get_logger(__name__)


def find_override_library(
    spec: EngineSpec,
    config: EngineConfig,
    platform: Platform,
    gpu_probe: GpuProbe,
) -> Optional[LibraryInfo]:
    """
    Look for a prebuilt engine outside the cache.

    Version and flavor of a prebuilt library can't be read from disk, so
    they come from env/config, falling back to the detected platform and
    the GPU probe. Prebuilt libraries are assumed to be pre-C++11 ABI
    builds, which is what the upstream wheels ship.
    """
    native_file = native_file_name(spec, platform.os_prefix)
    directory = None
    from_env = os.environ.get(env_name(spec, "library_path"))
    if from_env:
        directory = find_library_in_path(from_env, native_file)
    if directory is None and config.library_path:
        directory = find_library_in_path(config.library_path, native_file)
    if directory is None:
        return None

    version = resolve_override(spec, config, "version") or platform.version
    flavor = resolve_override(spec, config, "flavor")
    if flavor is None:
        flavor = with_precxx11(probe_flavor(gpu_probe))

    logger.info(
        "Using prebuilt native library",
        extra={"engine": spec.name, "path": str(directory), "version": version, "flavor": flavor},
    )
    return LibraryInfo(
        directory=directory,
        version=version,
        api_version=platform.api_version,
        flavor=flavor,
        classifier=platform.classifier,
    )


def find_native_library(
    spec: EngineSpec,
    config: EngineConfig,
    platform: Platform,
    gpu_probe: GpuProbe,
    repository: Optional[ArtifactRepository] = None,
) -> LibraryInfo:
    """Populate the cache for `platform` by download or bundle copy."""
    override = resolve_version_override(spec, config, platform.version)
    if override is not None:
        platform = detect_platform(
            spec,
            config,
            override_version=override,
            gpu_probe=gpu_probe,
            os_prefix=platform.os_prefix,
            os_arch=platform.os_arch,
        )
        flavor = resolve_flavor(spec, config, platform, gpu_probe)
        return download_native_library(platform, spec, config, flavor, repository)

    if platform.placeholder:
        flavor = resolve_flavor(spec, config, platform, gpu_probe)
        return download_native_library(platform, spec, config, flavor, repository)

    return copy_bundled_native_library(platform, spec, config)


def load_library(
    engine: str = "pytorch",
    config: Optional[EngineConfig] = None,
    gpu_probe: Optional[GpuProbe] = None,
    repository: Optional[ArtifactRepository] = None,
    load_fn: Optional[LoadFn] = None,
    os_prefix: Optional[str] = None,
    os_arch: Optional[str] = None,
) -> LibraryInfo:
    """
    Resolve, fetch and load a native engine once per process.

    Args:
        engine: Registered engine name.
        config: Engine settings, defaults when omitted.
        gpu_probe: Accelerator probe, torch-backed by default.
        repository: Artifact repository client, built from config when omitted.
        load_fn: Library opener, ctypes by default.
        os_prefix: Host OS prefix, detected when omitted.
        os_arch: Host architecture, detected when omitted.

    Returns:
        Where the engine was loaded from and which build it is.

    Raises:
        NativeEngineError: Any resolution, download or load failure. No
            partial state is recorded when this is raised.
    """
    spec = get_engine(engine)
    engine_config = config if config is not None else EngineConfig(name=engine)
    probe = gpu_probe if gpu_probe is not None else TorchGpuProbe()
    context = get_context()

    with context.lock:
        state = context.state(spec.name)
        if state.library is not None:
            return state.library

        platform = detect_platform(
            spec, engine_config, gpu_probe=probe, os_prefix=os_prefix, os_arch=os_arch
        )
        info = find_override_library(spec, engine_config, platform, probe)
        if info is None:
            info = find_native_library(spec, engine_config, platform, probe, repository)

        load_engine_libraries(info, spec, platform.os_prefix, load_fn)

        bridge = find_bridge_library(info, spec, engine_config, platform.os_prefix, repository)
        load_native_library(str(bridge.absolute()), load_fn)

        state.platform = platform
        state.library = info
        state.bridge_path = str(bridge)
        logger.info(
            "Native engine loaded",
            extra={
                "engine": spec.name,
                "version": display_version(info.version),
                "flavor": info.flavor,
                "path": str(info.directory),
            },
        )
        return info


def _loaded(engine: str) -> LibraryInfo:
    state = get_context().engines.get(engine)
    if state is None or state.library is None:
        raise RuntimeError(f"Native engine '{engine}' has not been loaded")
    return state.library


def get_version(engine: str = "pytorch") -> str:
    """Canonical version of the loaded engine (raw string if it doesn't parse)."""
    return display_version(_loaded(engine).version)


def get_library_path(engine: str = "pytorch") -> Path:
    """Directory the loaded engine's libraries came from."""
    return _loaded(engine).directory
