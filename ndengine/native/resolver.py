# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Version and flavor resolution.

Every setting is looked up in the same order:
  1. environment variable `{PREFIX}_{KEY}` (e.g. PYTORCH_VERSION)
  2. the engine config field (the process-level property)
  3. whatever was detected (bundle descriptor, GPU probe)

Flavors additionally get a `-precxx11` suffix when the pre-C++11 ABI build
is required: forced by env/config, implied by linux on aarch64 (only
precxx11 builds are published there), or implied by a bundle that ships
its own libstdc++.so.6 (legacy binary compatibility).
"""

import logging
import os
from typing import Optional

from ndengine.config.schema import EngineConfig
from ndengine.logging.logger import get_logger
from ndengine.native.cuda import GpuProbe
from ndengine.native.engines import EngineSpec
from ndengine.native.platform import Platform, probe_flavor

logger: logging.Logger = get_logger(__name__)

PRECXX11_SUFFIX = "-precxx11"
LEGACY_ABI_MARKER = "libstdc++.so.6"

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def env_name(spec: EngineSpec, key: str) -> str:
    """`PYTORCH` + `version` -> `PYTORCH_VERSION`."""
    return f"{spec.env_prefix}_{key.upper()}"


def resolve_override(spec: EngineSpec, config: EngineConfig, key: str) -> Optional[str]:
    """
    Look up an override: environment first, then the config field named `key`.

    Empty strings count as unset.
    """
    from_env = os.environ.get(env_name(spec, key))
    if from_env:
        return from_env
    from_config = getattr(config, key)
    if from_config:
        return str(from_config)
    return None


def resolve_version_override(
    spec: EngineSpec,
    config: EngineConfig,
    detected_version: str,
) -> Optional[str]:
    """
    Return the explicit version to download, if one applies.

    An override that is a prefix of the detected version (``1.8.1`` against
    ``1.8.1-20210421``) names the build we already have and is ignored.
    """
    override = resolve_override(spec, config, "version")
    if override is None or detected_version.startswith(override):
        return None
    logger.warning(
        "Override engine version",
        extra={"engine": spec.name, "version": override, "detected": detected_version},
    )
    return override


def needs_precxx11(spec: EngineSpec, config: EngineConfig, platform: Platform) -> bool:
    """Whether the pre-C++11 ABI build must be used on this host."""
    from_env = os.environ.get(env_name(spec, "precxx11"))
    if from_env is not None and from_env.strip().lower() in _TRUE_STRINGS:
        return True
    if config.precxx11:
        return True
    return platform.os_arch == "aarch64" and platform.os_prefix == "linux"


def precxx11_suffix(spec: EngineSpec, config: EngineConfig, platform: Platform) -> str:
    """The suffix to append to flavors on this host, possibly empty."""
    return PRECXX11_SUFFIX if needs_precxx11(spec, config, platform) else ""


def with_precxx11(flavor: str) -> str:
    """Append the ABI suffix unless it's already there."""
    return flavor if flavor.endswith(PRECXX11_SUFFIX) else flavor + PRECXX11_SUFFIX


def resolve_flavor(
    spec: EngineSpec,
    config: EngineConfig,
    platform: Platform,
    gpu_probe: GpuProbe,
) -> str:
    """
    Produce the final build flavor.

    env -> config -> GPU probe, then the ABI suffix when required by the
    host or by a legacy bundle.
    """
    flavor = resolve_override(spec, config, "flavor")
    if flavor is None:
        flavor = probe_flavor(gpu_probe)
    if needs_precxx11(spec, config, platform) or LEGACY_ABI_MARKER in platform.libraries:
        flavor = with_precxx11(flavor)
    return flavor
