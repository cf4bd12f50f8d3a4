# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""Tests for platform detection from bundles and the GPU probe."""

from pathlib import Path

import pytest

from ndengine.config.schema import EngineConfig
from ndengine.native.cuda import StaticGpuProbe
from ndengine.native.engines import PYTORCH
from ndengine.native.platform import bundled_platform_file, detect_platform, probe_flavor
from ndengine.runtime.environment import detect_os_arch, detect_os_prefix, map_library_name


def _write_descriptor(bundle: Path, body: str) -> None:
    descriptor = bundled_platform_file(bundle, "pytorch")
    descriptor.parent.mkdir(parents=True)
    descriptor.write_text(body, encoding="utf-8")


class TestProbeFlavor:
    def test_no_gpu_is_cpu(self) -> None:
        assert probe_flavor(StaticGpuProbe(count=0, version="11.3")) == "cpu"

    def test_gpu_gives_cuda_flavor(self) -> None:
        assert probe_flavor(StaticGpuProbe(count=1, version="10.2")) == "cu102"


class TestDetectPlatform:
    def test_placeholder_without_bundle(self) -> None:
        platform = detect_platform(
            PYTORCH, EngineConfig(), gpu_probe=StaticGpuProbe(), os_prefix="linux", os_arch="x86_64"
        )
        assert platform.placeholder is True
        assert platform.version == PYTORCH.default_version
        assert platform.flavor == "cpu"
        assert platform.classifier == "linux-x86_64"
        assert platform.api_version == "0.17.0"
        assert str(platform) == "1.10.0-cpu-linux-x86_64"

    def test_reads_bundle_descriptor(self, tmp_path: Path) -> None:
        _write_descriptor(
            tmp_path,
            "version=1.11.0\n"
            "placeholder=false\n"
            "flavor=cu113\n"
            "classifier=linux-x86_64\n"
            "libraries=libtorch.so, libc10.so,libtorch_cpu.so\n"
            "api_version=0.18.0\n",
        )
        platform = detect_platform(
            PYTORCH,
            EngineConfig(bundle_dir=str(tmp_path)),
            gpu_probe=StaticGpuProbe(),
            os_prefix="linux",
            os_arch="x86_64",
        )
        assert platform.placeholder is False
        assert platform.version == "1.11.0"
        assert platform.flavor == "cu113"
        assert platform.libraries == ("libtorch.so", "libc10.so", "libtorch_cpu.so")
        assert platform.api_version == "0.18.0"

    def test_placeholder_descriptor(self, tmp_path: Path) -> None:
        _write_descriptor(tmp_path, "version=1.10.0\nplaceholder=true\n")
        platform = detect_platform(
            PYTORCH,
            EngineConfig(bundle_dir=str(tmp_path)),
            gpu_probe=StaticGpuProbe(count=1, version="11.1"),
            os_prefix="linux",
            os_arch="x86_64",
        )
        assert platform.placeholder is True
        assert platform.flavor == "cu111"

    def test_override_version_ignores_bundle(self, tmp_path: Path) -> None:
        _write_descriptor(tmp_path, "version=1.11.0\nplaceholder=false\n")
        platform = detect_platform(
            PYTORCH,
            EngineConfig(bundle_dir=str(tmp_path)),
            override_version="1.9.1",
            gpu_probe=StaticGpuProbe(),
            os_prefix="osx",
            os_arch="x86_64",
        )
        assert platform.placeholder is True
        assert platform.version == "1.9.1"
        assert platform.classifier == "osx-x86_64"


class TestEnvironmentMapping:
    @pytest.mark.parametrize(
        ("system", "prefix"),
        [("Linux", "linux"), ("Darwin", "osx"), ("Windows", "win")],
    )
    def test_os_prefix(self, system: str, prefix: str) -> None:
        assert detect_os_prefix(system) == prefix

    def test_unknown_os_raises(self) -> None:
        with pytest.raises(RuntimeError):
            detect_os_prefix("Plan9")

    @pytest.mark.parametrize(
        ("machine", "arch"),
        [("AMD64", "x86_64"), ("x86_64", "x86_64"), ("arm64", "aarch64"), ("aarch64", "aarch64")],
    )
    def test_os_arch(self, machine: str, arch: str) -> None:
        assert detect_os_arch(machine) == arch

    @pytest.mark.parametrize(
        ("os_prefix", "file_name"),
        [("linux", "libtorch.so"), ("osx", "libtorch.dylib"), ("win", "torch.dll")],
    )
    def test_library_names(self, os_prefix: str, file_name: str) -> None:
        assert map_library_name("torch", os_prefix) == file_name
