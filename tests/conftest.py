# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for ndengine tests.

Fixtures here are available to every test file automatically. The network
is replaced by FakeSession, which serves an in-memory artifact repository,
and native loading by a recording load function, so nothing here touches
the real dynamic linker or the internet.
"""

import gzip
import io
import textwrap
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

import pytest
import requests

from ndengine.config.schema import EngineConfig
from ndengine.native.exceptions import NativeLoadError
from ndengine.native.loader import LoadFn, clear_load_hooks, load_native_library
from ndengine.native.repository import ArtifactRepository
from ndengine.runtime.context import reset_context

PUBLISH_URL = "https://repo.example.test"

# dlopen messages for a library (or one of its dependencies) that isn't installed.
_MISSING_LIBRARY_MARKERS = (
    "cannot open shared object file",
    "no such file",
    "image not found",
    "library not loaded",
    "could not find module",
)


class FakeResponse:
    """Just enough of requests.Response for the repository client."""

    def __init__(self, url: str, body: Optional[bytes], status_code: int = 200) -> None:
        self.url = url
        self.status_code = status_code
        self.content = body if body is not None else b""
        self.raw = io.BytesIO(self.content)
        self.closed = False

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for url: {self.url}", response=None)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class FakeSession:
    """
    In-memory stand-in for requests.Session.

    Unknown URLs answer 404. Every GET is recorded in `calls`, and the
    headers it was sent with in `headers`.
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.headers: list[dict[str, str]] = []

    def get(
        self,
        url: str,
        stream: bool = False,
        timeout: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> FakeResponse:
        self.calls.append(url)
        self.headers.append(dict(headers or {}))
        if url not in self.files:
            return FakeResponse(url, None, status_code=404)
        return FakeResponse(url, self.files[url])

    def publish(
        self,
        engine: str,
        version: str,
        artifacts: dict[str, bytes],
        publish_url: str = PUBLISH_URL,
        corrupt: tuple[str, ...] = (),
    ) -> None:
        """
        Publish gzip-compressed artifacts plus their files.txt manifest.

        Paths listed in `corrupt` are served truncated mid-stream.
        """
        base = f"{publish_url}/{engine}/{version}"
        manifest = []
        for relative_path, data in artifacts.items():
            manifest.append(relative_path)
            body = gzip.compress(data)
            if relative_path in corrupt:
                body = body[: len(body) // 2]
            self.files[f"{base}/{relative_path}"] = body
        self.files[f"{base}/files.txt"] = ("\n".join(manifest) + "\n").encode("utf-8")

    def publish_raw(self, url: str, data: bytes) -> None:
        self.files[url] = data


def is_missing_host_library(err: NativeLoadError) -> bool:
    """True when the dynamic linker failed because a shared library isn't on this host."""
    cause = err.__cause__
    if not isinstance(cause, OSError):
        return False
    message = str(cause).lower()
    return any(marker in message for marker in _MISSING_LIBRARY_MARKERS)


class RecordingLoader:
    """load_fn that remembers every path it was asked to open."""

    def __init__(self) -> None:
        self.paths: list[str] = []

    def __call__(self, path: str) -> object:
        self.paths.append(path)
        return object()

    @property
    def names(self) -> list[str]:
        return [Path(path).name for path in self.paths]


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch):
    """Fresh native context, no load hooks and no engine env overrides per test."""
    for prefix in ("PYTORCH", "ONNXRUNTIME"):
        for key in ("LIBRARY_PATH", "VERSION", "FLAVOR", "PRECXX11"):
            monkeypatch.delenv(f"{prefix}_{key}", raising=False)
    monkeypatch.delenv("ENGINE_CACHE_DIR", raising=False)
    reset_context()
    clear_load_hooks()
    yield
    reset_context()
    clear_load_hooks()


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture()
def repository(fake_session: FakeSession) -> ArtifactRepository:
    return ArtifactRepository(PUBLISH_URL, "pytorch", session=fake_session)  # type: ignore[arg-type]


@pytest.fixture()
def recording_loader() -> RecordingLoader:
    return RecordingLoader()


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture()
def engine_config(cache_dir: Path) -> EngineConfig:
    return EngineConfig(name="pytorch", cache_dir=str(cache_dir), publish_url=PUBLISH_URL)


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """
    Create a minimal valid config YAML file in a temp directory.

    This is the smallest config that passes schema validation.
    """
    config_content = textwrap.dedent("""\
        global:
          config_version: "1.0.0"
          project_name: "ndengine-test"
          seed: 42
          log_level: "DEBUG"
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML that fails schema validation (missing required field)."""
    config_content = textwrap.dedent("""\
        global:
          project_name: "ndengine-test"
          seed: 42
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file


@pytest.fixture()
def load_or_skip():
    """
    Load a library for real, skipping the test when the host lacks it.

    A missing host library says nothing about ndengine, so it is a skip
    rather than a failure. Any other load error still fails the test.
    """

    def _load(path: str, load_fn: Optional[LoadFn] = None) -> object:
        try:
            return load_native_library(path, load_fn)
        except NativeLoadError as err:
            if is_missing_host_library(err):
                pytest.skip(f"Native library not available on this host: {err}")
            raise

    return _load
