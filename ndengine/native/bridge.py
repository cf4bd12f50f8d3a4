# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Bridge library resolution.

The bridge is the thin binding between this runtime and the vendor's
native library. It is versioned by the binding API, independently of the
engine, so it is cached as

    {cache_entry}/{api_version}-{bridge_file}

next to the engine files. A bundle may ship a prebuilt bridge together
with `jnilib/{engine}.properties`:

    jni_version = {engine_version}-{api_version}

When that file is absent or names another build, the bridge is
downloaded instead.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

import requests

from ndengine.config.schema import EngineConfig
from ndengine.logging.logger import get_logger
from ndengine.native.engines import EngineSpec
from ndengine.native.exceptions import BridgeVersionError, DownloadFailedError
from ndengine.native.fetcher import cache_entry_dir
from ndengine.native.platform import LibraryInfo
from ndengine.native.repository import ArtifactRepository
from ndengine.native.version import canonicalize_version
from ndengine.runtime.environment import map_library_name
from ndengine.utils.filesystem import atomic_move, temporary_file
from ndengine.utils.paths import get_engine_cache_dir
from ndengine.utils.properties import read_properties

logger: logging.Logger = get_logger(__name__)

JNI_VERSION_KEY = "jni_version"

_CHUNK_SIZE = 1 << 20


def bridge_file_name(spec: EngineSpec, os_prefix: str) -> str:
    return map_library_name(spec.bridge_lib, os_prefix)


def bridge_cache_path(info: LibraryInfo, spec: EngineSpec, config: EngineConfig, os_prefix: str) -> Path:
    """Cache location of the bridge for this engine build and API version."""
    cache_dir = get_engine_cache_dir(spec.name, config.cache_dir)
    entry = cache_entry_dir(cache_dir, info.version, info.flavor, info.classifier)
    return entry / f"{info.api_version}-{bridge_file_name(spec, os_prefix)}"


def read_bundled_bridge_version(bundle_dir: Optional[str], spec: EngineSpec) -> Optional[str]:
    """
    Return the `jni_version` recorded in the bundle, or None without a bundle file.

    Raises:
        BridgeVersionError: If the properties file exists but has no jni_version.
    """
    if bundle_dir is None:
        return None
    props_path = Path(bundle_dir) / "jnilib" / f"{spec.name}.properties"
    if not props_path.is_file():
        return None
    jni_version = read_properties(props_path).get(JNI_VERSION_KEY)
    if not jni_version:
        raise BridgeVersionError(f"No {spec.name} jni version found in {props_path}")
    return jni_version


def _download_bridge(
    repository: ArtifactRepository,
    target: Path,
    version: str,
    info: LibraryInfo,
    file_name: str,
) -> None:
    url = repository.bridge_url(version, info.api_version, info.classifier, info.flavor, file_name)
    logger.info("Downloading bridge library to cache", extra={"url": url})
    with temporary_file(target.parent, prefix="jni") as tmp:
        try:
            with repository.open_stream(url) as response, open(tmp, "wb") as sink:
                # iter_content undoes any Content-Encoding a proxy applied anyway.
                for chunk in response.iter_content(_CHUNK_SIZE):
                    sink.write(chunk)
        except (requests.RequestException, OSError) as err:
            raise DownloadFailedError(f"Cannot download bridge library {url}: {err}") from err
        atomic_move(tmp, target)


def _copy_bundled_bridge(bundle_dir: Path, target: Path, info: LibraryInfo, file_name: str) -> None:
    source = bundle_dir / "jnilib" / info.classifier / info.flavor / file_name
    logger.info("Extracting bridge library to cache", extra={"file": str(source)})
    with temporary_file(target.parent, prefix="jni") as tmp:
        with open(source, "rb") as src, open(tmp, "wb") as dst:
            shutil.copyfileobj(src, dst)
        atomic_move(tmp, target)


def find_bridge_library(
    info: LibraryInfo,
    spec: EngineSpec,
    config: EngineConfig,
    os_prefix: str,
    repository: Optional[ArtifactRepository] = None,
) -> Path:
    """
    Make sure the bridge library for `info` is cached and return its path.

    Cache hit returns immediately. Otherwise the bundled bridge is used when
    its recorded version matches `{version}-{api_version}`, and the bridge
    is downloaded in every other case.

    Raises:
        InvalidVersionFormatError: If the engine version can't be canonicalized.
        BridgeVersionError: If the bundle's properties lack a jni_version.
        DownloadFailedError: If the download fails.
    """
    target = bridge_cache_path(info, spec, config, os_prefix)
    if target.is_file():
        return target

    version = canonicalize_version(info.version)
    file_name = bridge_file_name(spec, os_prefix)
    target.parent.mkdir(parents=True, exist_ok=True)

    bundle_dir = config.bundle_dir
    jni_version = read_bundled_bridge_version(bundle_dir, spec)
    if bundle_dir is not None and jni_version is not None:
        if jni_version.startswith(f"{version}-{info.api_version}"):
            _copy_bundled_bridge(Path(bundle_dir), target, info, file_name)
            return target
        logger.warning(
            "Found mismatched bridge library version",
            extra={"engine": spec.name, "jni_version": jni_version},
        )

    if repository is None:
        repository = ArtifactRepository(
            config.publish_url, spec.name, timeout=config.download_timeout_seconds
        )
    _download_bridge(repository, target, version, info, file_name)
    return target
