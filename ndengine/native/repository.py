# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Remote artifact repository client.

Layout of the repository, per engine and canonical version:

    {publish_url}/{engine}/{version}/files.txt
    {publish_url}/{engine}/{version}/{flavor}/{classifier}/.../{file}.gz
    {publish_url}/{engine}/{version}/jnilib/{api_version}/{classifier}/{flavor}/{bridge}

`files.txt` is a plaintext manifest, one relative artifact path per line.
All requests are blocking. There is no retry here: a failed request
surfaces as DownloadFailedError and aborts engine initialization.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

import requests

from ndengine.logging.logger import get_logger
from ndengine.native.exceptions import DownloadFailedError

logger: logging.Logger = get_logger(__name__)

MANIFEST_NAME = "files.txt"

# Artifacts are already gzip files; a transfer encoding on top would reach
# the extractor undecoded.
_STREAM_HEADERS = {"Accept-Encoding": "identity"}


class ArtifactRepository:
    """
    Thin wrapper around a requests.Session bound to one engine.

    Args:
        publish_url: Base URL of the repository, without trailing slash.
        engine: Engine name, the first path segment.
        session: Session to use; a fresh one is created when omitted.
        timeout: Per-request timeout in seconds, None to wait forever.
    """

    def __init__(
        self,
        publish_url: str,
        engine: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.publish_url = publish_url.rstrip("/")
        self.engine = engine
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout

    def version_url(self, version: str) -> str:
        return f"{self.publish_url}/{self.engine}/{version}"

    def artifact_url(self, version: str, relative_path: str) -> str:
        return f"{self.version_url(version)}/{relative_path}"

    def bridge_url(
        self, version: str, api_version: str, classifier: str, flavor: str, file_name: str
    ) -> str:
        return (
            f"{self.version_url(version)}/jnilib/{api_version}/"
            f"{classifier}/{flavor}/{file_name}"
        )

    def fetch_manifest(self, version: str) -> list[str]:
        """
        Download and split the manifest for `version`.

        Raises:
            DownloadFailedError: On any network or HTTP error.
        """
        url = f"{self.version_url(version)}/{MANIFEST_NAME}"
        logger.debug("Fetching manifest", extra={"url": url})
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as err:
            raise DownloadFailedError(f"Failed to fetch manifest {url}: {err}") from err
        return [line.strip() for line in response.text.splitlines() if line.strip()]

    @contextmanager
    def open_stream(self, url: str) -> Iterator[requests.Response]:
        """
        Open a streaming GET whose raw body can be copied chunk by chunk.

        The body is requested without transfer compression, so `response.raw`
        holds the artifact bytes exactly as published.

        The response is closed when the block exits, on success or failure.

        Raises:
            DownloadFailedError: If the request fails or returns an HTTP error.
        """
        try:
            response = self._session.get(
                url, stream=True, timeout=self._timeout, headers=_STREAM_HEADERS
            )
        except requests.RequestException as err:
            raise DownloadFailedError(f"Failed to download {url}: {err}") from err
        with response:
            try:
                response.raise_for_status()
            except requests.HTTPError as err:
                raise DownloadFailedError(f"Failed to download {url}: {err}") from err
            yield response
