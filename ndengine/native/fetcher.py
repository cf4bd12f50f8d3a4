# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Native library cache and fetcher.

Cache layout:

    {cache_root}/{engine}/{version}-{flavor}-{classifier}/{native_file}

The primary native file is the only "already cached" signal. An entry is
filled in a temporary sibling directory and renamed into place once every
file is there, so an interrupted download can never leave the signal file
behind.

Libraries reach the cache one of two ways:
  - download: manifest lookup on the artifact repository, gunzip on the fly
  - bundle copy: a local bundle already carries the files for this platform
"""

import gzip
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

import requests

from ndengine.config.schema import EngineConfig
from ndengine.logging.logger import get_logger
from ndengine.native.engines import EngineSpec
from ndengine.native.exceptions import DownloadFailedError, UnsupportedPlatformError
from ndengine.native.platform import LibraryInfo, Platform
from ndengine.native.repository import ArtifactRepository
from ndengine.native.resolver import LEGACY_ABI_MARKER, PRECXX11_SUFFIX, with_precxx11
from ndengine.native.version import canonicalize_version, uses_flavored_bundle_layout
from ndengine.runtime.environment import map_library_name
from ndengine.utils.filesystem import atomic_move, delete_tree, temporary_directory
from ndengine.utils.paths import get_engine_cache_dir, validate_path_within

logger: logging.Logger = get_logger(__name__)

_COPY_BUFFER_SIZE = 1 << 20


def cache_entry_dir(cache_dir: Path, version: str, flavor: str, classifier: str) -> Path:
    """`{cache_dir}/{version}-{flavor}-{classifier}`."""
    return cache_dir / f"{version}-{flavor}-{classifier}"


def native_file_name(spec: EngineSpec, os_prefix: str) -> str:
    return map_library_name(spec.native_lib, os_prefix)


def find_library_in_path(search_path: str, native_file: str) -> Optional[Path]:
    """
    Search an os.pathsep separated list for the native library.

    An entry may name the library file itself or a directory holding it.

    Returns:
        The absolute directory containing the library, or None.
    """
    for entry in search_path.split(os.pathsep):
        if not entry:
            continue
        candidate = Path(entry)
        if not candidate.exists():
            continue
        if candidate.is_file() and candidate.name == native_file:
            return candidate.parent.absolute()
        if (candidate / native_file).is_file():
            return candidate.absolute()
    return None


def _library_info(directory: Path, platform: Platform, flavor: str) -> LibraryInfo:
    return LibraryInfo(
        directory=directory.absolute(),
        version=platform.version,
        api_version=platform.api_version,
        flavor=flavor,
        classifier=platform.classifier,
    )


def _match_cuda_flavor(
    lines: list[str], flavor: str, precxx11: str, classifier: str, native_file: str
) -> Optional[str]:
    """
    Find a published flavor with the same CUDA major version.

    `cu113` may be served by any `cu11x` build; the first one listed wins.
    """
    cuda_major = flavor[:4]
    pattern = re.compile(
        "("
        + re.escape(cuda_major)
        + r"\d"
        + re.escape(precxx11)
        + ")/"
        + re.escape(classifier)
        + "/native/lib/"
        + re.escape(native_file)
        + r"\.gz"
    )
    for line in lines:
        match = pattern.fullmatch(line)
        if match is not None:
            return match.group(1)
    return None


def _extract_gzip(response: requests.Response, target: Path) -> None:
    """Stream a gzip body into `target`, decompressing chunk by chunk."""
    with gzip.GzipFile(fileobj=response.raw) as source, open(target, "wb") as sink:
        shutil.copyfileobj(source, sink, _COPY_BUFFER_SIZE)


def download_native_library(
    platform: Platform,
    spec: EngineSpec,
    config: EngineConfig,
    flavor: str,
    repository: Optional[ArtifactRepository] = None,
) -> LibraryInfo:
    """
    Make sure the cache holds the native libraries for `platform`, downloading on a miss.

    Args:
        platform: Detected platform (version, classifier, API version).
        spec: Engine being fetched.
        config: Engine settings (cache dir, publish URL, timeout).
        flavor: Resolved flavor, including any `-precxx11` suffix.
        repository: Artifact repository client, built from config when omitted.

    Returns:
        Location and final flavor of the cached libraries. The flavor may
        differ from the requested one after CUDA matching or CPU fallback.

    Raises:
        InvalidVersionFormatError: If the platform version can't be canonicalized.
        DownloadFailedError: If the manifest or any artifact can't be fetched or extracted.
        UnsupportedPlatformError: If the manifest has nothing for this flavor/classifier.
    """
    cache_dir = get_engine_cache_dir(spec.name, config.cache_dir)
    native_file = native_file_name(spec, platform.os_prefix)
    classifier = platform.classifier

    entry = cache_entry_dir(cache_dir, platform.version, flavor, classifier)
    if (entry / native_file).is_file():
        logger.debug("Using cache dir", extra={"path": str(entry)})
        return _library_info(entry, platform, flavor)

    version = canonicalize_version(platform.version)
    if repository is None:
        repository = ArtifactRepository(
            config.publish_url, spec.name, timeout=config.download_timeout_seconds
        )

    lines = repository.fetch_manifest(version)
    precxx11 = PRECXX11_SUFFIX if flavor.endswith(PRECXX11_SUFFIX) else ""

    if flavor.startswith("cu"):
        matched = _match_cuda_flavor(lines, flavor, precxx11, classifier, native_file)
        if matched is None:
            logger.warning(
                "No matching cuda flavor found, falling back to cpu",
                extra={"classifier": classifier, "flavor": flavor},
            )
            flavor = "cpu" + precxx11
        else:
            flavor = matched

        entry = cache_entry_dir(cache_dir, platform.version, flavor, classifier)
        if (entry / native_file).is_file():
            logger.debug("Using cache dir", extra={"path": str(entry)})
            return _library_info(entry, platform, flavor)

    prefix = f"{flavor}/{classifier}/"
    selected = [line for line in lines if line.startswith(prefix)]
    if not selected:
        raise UnsupportedPlatformError(
            f"No {spec.name} native library matches your operating system: "
            f"{platform.version}-{flavor}-{classifier}"
        )

    delete_tree(entry)
    logger.debug("Using cache dir", extra={"path": str(entry)})

    with temporary_directory(cache_dir, prefix="tmp") as tmp_dir:
        for line in selected:
            url = repository.artifact_url(version, line)
            file_name = unquote(line[line.rfind("/") + 1:].removesuffix(".gz"))
            try:
                target = validate_path_within(tmp_dir / file_name, tmp_dir)
            except ValueError as err:
                raise DownloadFailedError(f"Refusing manifest entry {line}: {err}") from err

            logger.info("Downloading", extra={"url": url})
            try:
                with repository.open_stream(url) as response:
                    _extract_gzip(response, target)
            except (requests.RequestException, OSError, EOFError) as err:
                raise DownloadFailedError(f"Failed to extract {url}: {err}") from err

        atomic_move(tmp_dir, entry)

    return _library_info(entry, platform, flavor)


def bundled_native_dir(bundle_dir: Path, spec: EngineSpec, version: str, flavor: str, classifier: str) -> Path:
    """Directory inside a bundle holding the native files for this build."""
    if uses_flavored_bundle_layout(version):
        return bundle_dir / spec.name / flavor / classifier
    return bundle_dir / "native" / "lib"


def copy_bundled_native_library(
    platform: Platform,
    spec: EngineSpec,
    config: EngineConfig,
) -> LibraryInfo:
    """
    Populate the cache from the local bundle described by `platform`.

    Bundles that ship their own libstdc++.so.6 are pre-C++11 ABI builds,
    which is reflected in the flavor (and so in the cache key).

    Raises:
        InvalidVersionFormatError: If the bundled version can't be parsed.
        UnsupportedPlatformError: If the bundle lacks a listed library.
    """
    flavor = platform.flavor
    if LEGACY_ABI_MARKER in platform.libraries:
        flavor = with_precxx11(flavor)
    classifier = platform.classifier

    cache_dir = get_engine_cache_dir(spec.name, config.cache_dir)
    logger.debug("Using cache dir", extra={"path": str(cache_dir)})
    entry = cache_entry_dir(cache_dir, platform.version, flavor, classifier)
    if (entry / native_file_name(spec, platform.os_prefix)).is_file():
        return _library_info(entry, platform, flavor)

    delete_tree(entry)

    if config.bundle_dir is None:
        raise UnsupportedPlatformError(
            f"Platform {platform} is not a placeholder but no bundle directory is configured"
        )
    source_dir = bundled_native_dir(
        Path(config.bundle_dir), spec, platform.version, flavor, classifier
    )

    with temporary_directory(cache_dir, prefix="tmp") as tmp_dir:
        for file_name in platform.libraries:
            source = source_dir / file_name
            logger.info("Extracting to cache", extra={"file": str(source)})
            if not source.is_file():
                raise UnsupportedPlatformError(
                    f"Bundle is missing {file_name} for platform {platform}"
                )
            with open(source, "rb") as src, open(tmp_dir / file_name, "wb") as dst:
                shutil.copyfileobj(src, dst, _COPY_BUFFER_SIZE)

        atomic_move(tmp_dir, entry)

    return _library_info(entry, platform, flavor)
