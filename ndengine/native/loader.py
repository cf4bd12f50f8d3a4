# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Ordered native library loader.

Engine builds ship dozens of shared libraries, and a few of them (the CPU
math kernels, the CUDA runtime glue, the core tensor library) need their
dependencies already registered with the dynamic linker. Loading happens
in two passes:

  1. every file that is not deferred and not excluded, in any order;
  2. the deferred libraries, in their declared order, skipping the ones a
     given build doesn't ship (CPU builds have no CUDA libraries).

Libraries are opened with RTLD_GLOBAL so later libraries resolve symbols
against earlier ones.

Before each load, the registered load hooks run. Hosts that need to see
or prepare every library (sandboxed loaders, custom linkers) register a
hook once at startup instead of being looked up by name at load time.
"""

import ctypes
import logging
from collections.abc import Callable
from pathlib import Path
from typing import NamedTuple, Optional

from ndengine.logging.logger import get_logger
from ndengine.native.engines import EngineSpec
from ndengine.native.exceptions import NativeLoadError
from ndengine.native.platform import LibraryInfo
from ndengine.native.version import display_version
from ndengine.runtime.environment import map_library_name

logger: logging.Logger = get_logger(__name__)

LoadFn = Callable[[str], object]
LoadHook = Callable[[str], None]

_LOAD_HOOKS: list[LoadHook] = []


def register_load_hook(hook: LoadHook) -> None:
    """Run `hook(path)` before every native library load, in registration order."""
    _LOAD_HOOKS.append(hook)


def clear_load_hooks() -> None:
    """Remove all registered load hooks."""
    _LOAD_HOOKS.clear()


def dlopen(path: str) -> ctypes.CDLL:
    """Open a shared library with its symbols visible to later loads."""
    return ctypes.CDLL(path, mode=ctypes.RTLD_GLOBAL)


class LoadPlan(NamedTuple):
    """Libraries to load, in order. `independent` first, then `ordered`."""

    independent: tuple[Path, ...]
    ordered: tuple[Path, ...]

    def paths(self) -> tuple[Path, ...]:
        return self.independent + self.ordered


def is_cuda_flavor(flavor: str) -> bool:
    return "cu" in flavor


def deferred_file_names(spec: EngineSpec, flavor: str, os_prefix: str) -> list[str]:
    names = spec.deferred_cuda if is_cuda_flavor(flavor) else spec.deferred_cpu
    return [map_library_name(name, os_prefix) for name in names]


def _is_independent(
    name: str,
    spec: EngineSpec,
    deferred: set[str],
    bridge_file: str,
    is_cuda: bool,
) -> bool:
    if name in deferred or name.endswith(bridge_file):
        return False
    if not is_cuda and any(marker in name for marker in spec.accelerator_markers):
        return False
    if any(part in name for part in spec.excluded_substrings):
        return False
    return not any(name.startswith(prefix) for prefix in spec.excluded_prefixes)


def plan_load_order(lib_dir: Path, spec: EngineSpec, flavor: str, os_prefix: str) -> LoadPlan:
    """
    Work out the load order for the libraries in `lib_dir`.

    The independent pass walks the directory recursively (sorted, so the
    order is reproducible even though it doesn't matter). The ordered pass
    holds the first cuDNN group present, then the deferred libraries that
    exist on disk.

    Raises:
        NativeLoadError: If `lib_dir` is not a directory.
    """
    if not lib_dir.is_dir():
        raise NativeLoadError(f"Folder does not exist: {lib_dir}")

    is_cuda = is_cuda_flavor(flavor)
    all_deferred = {
        map_library_name(name, os_prefix) for name in spec.deferred_cuda + spec.deferred_cpu
    }
    bridge_file = map_library_name(spec.bridge_lib, os_prefix)

    independent = tuple(
        path
        for path in sorted(lib_dir.rglob("*"))
        if path.is_file() and _is_independent(path.name, spec, all_deferred, bridge_file, is_cuda)
    )

    ordered: list[Path] = []
    for group in spec.cudnn_groups:
        if (lib_dir / group[0]).exists():
            ordered.extend(lib_dir / name for name in group)
            break

    for name in deferred_file_names(spec, flavor, os_prefix):
        candidate = lib_dir / name
        if candidate.exists():
            ordered.append(candidate)

    return LoadPlan(independent=independent, ordered=tuple(ordered))


def requires_aggregate_load(spec: EngineSpec, version: str, os_prefix: str) -> bool:
    """Whether this engine build must skip per-file loading on this OS."""
    return (display_version(version), os_prefix) in spec.aggregate_load


def load_native_library(path: str, load_fn: Optional[LoadFn] = None) -> object:
    """
    Run the load hooks, then load one library.

    Raises:
        NativeLoadError: If the dynamic linker rejects the library.
    """
    logger.debug("Loading native library", extra={"path": path})
    for hook in list(_LOAD_HOOKS):
        hook(path)
    loader = load_fn if load_fn is not None else dlopen
    try:
        return loader(path)
    except OSError as err:
        raise NativeLoadError(f"Failed to load native library {path}: {err}") from err


def load_engine_libraries(
    info: LibraryInfo,
    spec: EngineSpec,
    os_prefix: str,
    load_fn: Optional[LoadFn] = None,
) -> LoadPlan:
    """
    Load every library of a resolved engine, dependencies first.

    Returns:
        The executed plan (empty when the build needs an aggregate load).

    Raises:
        NativeLoadError: If the primary library is missing or any load fails.
    """
    lib_dir = info.directory.absolute()
    native_file = map_library_name(spec.native_lib, os_prefix)
    if not (lib_dir / native_file).is_file():
        raise NativeLoadError(f"Required native library {native_file} not found in {lib_dir}")

    if requires_aggregate_load(spec, info.version, os_prefix):
        logger.info(
            "Skipping per-file loading for this build",
            extra={"engine": spec.name, "version": info.version, "os": os_prefix},
        )
        return LoadPlan(independent=(), ordered=())

    plan = plan_load_order(lib_dir, spec, info.flavor, os_prefix)
    for path in plan.paths():
        load_native_library(str(path), load_fn)
    return plan
