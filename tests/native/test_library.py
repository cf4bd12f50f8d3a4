# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
End-to-end tests for load_library against the in-memory repository.

Loading is recorded instead of performed, so these exercise resolution,
caching, ordering and memoization without a real engine build.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from ndengine.config.schema import EngineConfig
from ndengine.native.cuda import StaticGpuProbe
from ndengine.native.exceptions import DownloadFailedError
from ndengine.native.library import get_library_path, get_version, load_library
from ndengine.runtime.context import get_context

PUBLISH_URL = "https://repo.example.test"


def _publish_cpu_build(session, canonical: str = "1.10.0") -> None:  # type: ignore[no-untyped-def]
    session.publish(
        "pytorch",
        canonical,
        {
            "cpu/linux-x86_64/native/lib/libc10.so.gz": b"c10",
            "cpu/linux-x86_64/native/lib/libtorch_cpu.so.gz": b"torch_cpu",
            "cpu/linux-x86_64/native/lib/libtorch.so.gz": b"torch",
        },
    )
    session.publish_raw(
        f"{PUBLISH_URL}/pytorch/{canonical}/jnilib/0.17.0/linux-x86_64/cpu/libdjl_torch.so",
        b"bridge",
    )


def _load(config: EngineConfig, repository, loader):  # type: ignore[no-untyped-def]
    return load_library(
        "pytorch",
        config,
        gpu_probe=StaticGpuProbe(count=0),
        repository=repository,
        load_fn=loader,
        os_prefix="linux",
        os_arch="x86_64",
    )


class TestDownloadPath:
    def test_fetches_and_loads_in_order(
        self, fake_session, repository, recording_loader, engine_config, cache_dir
    ) -> None:
        _publish_cpu_build(fake_session)

        info = _load(engine_config, repository, recording_loader)

        assert info.directory == (cache_dir / "pytorch" / "1.10.0-cpu-linux-x86_64").absolute()
        assert recording_loader.names == [
            "libc10.so",
            "libtorch_cpu.so",
            "libtorch.so",
            "0.17.0-libdjl_torch.so",
        ]
        assert get_version() == "1.10.0"
        assert get_library_path() == info.directory

    def test_second_call_is_memoized(
        self, fake_session, repository, recording_loader, engine_config
    ) -> None:
        _publish_cpu_build(fake_session)
        first = _load(engine_config, repository, recording_loader)
        calls = len(fake_session.calls)
        loads = len(recording_loader.paths)

        second = _load(engine_config, repository, recording_loader)

        assert second is first
        assert len(fake_session.calls) == calls
        assert len(recording_loader.paths) == loads

    def test_failure_records_nothing(self, repository, recording_loader, engine_config) -> None:
        with pytest.raises(DownloadFailedError):
            _load(engine_config, repository, recording_loader)
        assert not get_context().is_loaded("pytorch")
        assert recording_loader.paths == []
        with pytest.raises(RuntimeError, match="not been loaded"):
            get_version()

    def test_version_override_downloads_other_build(
        self, monkeypatch: pytest.MonkeyPatch, fake_session, repository, recording_loader, engine_config
    ) -> None:
        monkeypatch.setenv("PYTORCH_VERSION", "1.11.0")
        _publish_cpu_build(fake_session, canonical="1.11.0")

        info = _load(engine_config, repository, recording_loader)

        assert info.version == "1.11.0"
        assert get_version() == "1.11.0"


class TestConcurrentLoad:
    def test_only_one_thread_fetches_and_loads(
        self, monkeypatch: pytest.MonkeyPatch, fake_session, repository, recording_loader, engine_config
    ) -> None:
        _publish_cpu_build(fake_session)
        serve = fake_session.get

        def slow_get(*args, **kwargs):  # type: ignore[no-untyped-def]
            time.sleep(0.01)
            return serve(*args, **kwargs)

        monkeypatch.setattr(fake_session, "get", slow_get)
        threads = 8
        start = threading.Barrier(threads)

        def worker(_: int):  # type: ignore[no-untyped-def]
            start.wait()
            return _load(engine_config, repository, recording_loader)

        with ThreadPoolExecutor(max_workers=threads) as pool:
            results = list(pool.map(worker, range(threads)))

        assert all(result is results[0] for result in results)
        assert len(recording_loader.paths) == 4
        assert len(fake_session.calls) == 5
        assert len(set(fake_session.calls)) == 5
        assert get_context().is_loaded("pytorch")


class TestBundlePath:
    def test_bundle_needs_no_network(
        self, tmp_path: Path, fake_session, repository, recording_loader, cache_dir
    ) -> None:
        bundle = tmp_path / "bundle"
        native = bundle / "native" / "lib"
        native.mkdir(parents=True)
        (native / "pytorch.properties").write_text(
            "version=1.10.0\nplaceholder=false\nflavor=cpu\nclassifier=linux-x86_64\n"
            "libraries=libc10.so,libtorch.so\n",
            encoding="utf-8",
        )
        (native / "libc10.so").write_bytes(b"c10")
        (native / "libtorch.so").write_bytes(b"torch")
        jnilib = bundle / "jnilib"
        (jnilib / "linux-x86_64" / "cpu").mkdir(parents=True)
        (jnilib / "pytorch.properties").write_text("jni_version=1.10.0-0.17.0\n", encoding="utf-8")
        (jnilib / "linux-x86_64" / "cpu" / "libdjl_torch.so").write_bytes(b"bridge")
        config = EngineConfig(cache_dir=str(cache_dir), bundle_dir=str(bundle), publish_url=PUBLISH_URL)

        info = _load(config, repository, recording_loader)

        assert fake_session.calls == []
        assert (info.directory / "libtorch.so").read_bytes() == b"torch"
        assert recording_loader.names == ["libc10.so", "libtorch.so", "0.17.0-libdjl_torch.so"]


class TestOverrideLibrary:
    def test_prebuilt_library_from_env(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        fake_session,
        repository,
        recording_loader,
        engine_config,
    ) -> None:
        prebuilt = tmp_path / "prebuilt"
        prebuilt.mkdir()
        (prebuilt / "libtorch.so").write_bytes(b"torch")
        (prebuilt / "libc10.so").write_bytes(b"c10")
        monkeypatch.setenv("PYTORCH_LIBRARY_PATH", str(prebuilt))
        fake_session.publish_raw(
            f"{PUBLISH_URL}/pytorch/1.10.0/jnilib/0.17.0/linux-x86_64/cpu-precxx11/libdjl_torch.so",
            b"bridge",
        )

        info = _load(engine_config, repository, recording_loader)

        assert info.directory == prebuilt.absolute()
        assert info.flavor == "cpu-precxx11"
        assert recording_loader.names[:2] == ["libc10.so", "libtorch.so"]
        assert fake_session.calls == [
            f"{PUBLISH_URL}/pytorch/1.10.0/jnilib/0.17.0/linux-x86_64/cpu-precxx11/libdjl_torch.so"
        ]
