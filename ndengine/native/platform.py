# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Platform detection for a native engine.

A Platform describes which native build this process needs: OS prefix,
architecture, classifier, engine version, build flavor, binding API
version and the list of library files.

Two sources feed it:
  - a bundle shipped with the application may carry
    `native/lib/{engine}.properties` describing exactly what it contains;
  - otherwise the platform is a *placeholder*: the version is the engine
    default (or an explicit override), the flavor comes from the GPU probe,
    and the libraries must be downloaded.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ndengine.config.schema import EngineConfig
from ndengine.native.cuda import GpuProbe, TorchGpuProbe, cuda_version_string
from ndengine.native.engines import EngineSpec
from ndengine.runtime.environment import detect_os_arch, detect_os_prefix
from ndengine.utils.properties import read_properties


@dataclass(frozen=True)
class Platform:
    """Immutable description of the native build this host needs."""

    os_prefix: str
    os_arch: str
    version: str
    flavor: str
    classifier: str
    api_version: str
    libraries: tuple[str, ...] = ()
    placeholder: bool = True

    def __str__(self) -> str:
        return f"{self.version}-{self.flavor}-{self.classifier}"


def probe_flavor(gpu_probe: GpuProbe) -> str:
    """`cu{major}{minor}` when an accelerator is visible, `cpu` otherwise."""
    if gpu_probe.gpu_count() > 0:
        version = gpu_probe.cuda_version()
        if version:
            return "cu" + cuda_version_string(version)
    return "cpu"


def bundled_platform_file(bundle_dir: Path, engine: str) -> Path:
    """Location of the platform descriptor inside a bundle."""
    return bundle_dir / "native" / "lib" / f"{engine}.properties"


def detect_platform(
    spec: EngineSpec,
    config: EngineConfig,
    override_version: Optional[str] = None,
    gpu_probe: Optional[GpuProbe] = None,
    os_prefix: Optional[str] = None,
    os_arch: Optional[str] = None,
) -> Platform:
    """
    Detect the platform for `spec`.

    An explicit `override_version` always produces a placeholder for that
    version, since a bundle only ever describes its own version.

    Args:
        spec: The engine being resolved.
        config: Engine settings (bundle location, API version).
        override_version: Explicit version to target instead of the bundle's.
        gpu_probe: Accelerator probe, torch-backed by default.
        os_prefix: Host OS prefix, detected when omitted.
        os_arch: Host architecture, detected when omitted.
    """
    probe = gpu_probe if gpu_probe is not None else TorchGpuProbe()
    prefix = os_prefix if os_prefix is not None else detect_os_prefix()
    arch = os_arch if os_arch is not None else detect_os_arch()
    classifier = f"{prefix}-{arch}"

    if override_version is None and config.bundle_dir is not None:
        descriptor = bundled_platform_file(Path(config.bundle_dir), spec.name)
        if descriptor.is_file():
            props = read_properties(descriptor)
            libraries = tuple(
                item.strip() for item in props.get("libraries", "").split(",") if item.strip()
            )
            return Platform(
                os_prefix=prefix,
                os_arch=arch,
                version=props.get("version", spec.default_version),
                flavor=props.get("flavor") or probe_flavor(probe),
                classifier=props.get("classifier") or classifier,
                api_version=props.get("api_version") or config.api_version,
                libraries=libraries,
                placeholder=props.get("placeholder", "false").lower() == "true",
            )

    return Platform(
        os_prefix=prefix,
        os_arch=arch,
        version=override_version if override_version is not None else spec.default_version,
        flavor=probe_flavor(probe),
        classifier=classifier,
        api_version=config.api_version,
        libraries=(),
        placeholder=True,
    )


@dataclass(frozen=True)
class LibraryInfo:
    """Where the native engine ended up and which build it is."""

    directory: Path
    version: str
    api_version: str
    flavor: str
    classifier: str
