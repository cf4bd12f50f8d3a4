# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for flavor and version resolution.

Lookup order is env, then config, then detection. The pre-C++11 suffix is
added when forced, on linux/aarch64, or for bundles shipping libstdc++.
"""

import pytest

from ndengine.config.schema import EngineConfig
from ndengine.native.cuda import StaticGpuProbe, cuda_version_string
from ndengine.native.engines import ONNXRUNTIME, PYTORCH
from ndengine.native.platform import Platform
from ndengine.native.resolver import (
    env_name,
    needs_precxx11,
    resolve_flavor,
    resolve_override,
    resolve_version_override,
    with_precxx11,
)


def _platform(os_prefix: str = "linux", os_arch: str = "x86_64", libraries: tuple[str, ...] = ()) -> Platform:
    return Platform(
        os_prefix=os_prefix,
        os_arch=os_arch,
        version="1.10.0",
        flavor="cpu",
        classifier=f"{os_prefix}-{os_arch}",
        api_version="0.17.0",
        libraries=libraries,
    )


class TestOverrides:
    def test_env_name_uses_engine_prefix(self) -> None:
        assert env_name(PYTORCH, "version") == "PYTORCH_VERSION"
        assert env_name(ONNXRUNTIME, "library_path") == "ONNXRUNTIME_LIBRARY_PATH"

    def test_env_wins_over_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PYTORCH_FLAVOR", "cu102")
        config = EngineConfig(flavor="cpu")
        assert resolve_override(PYTORCH, config, "flavor") == "cu102"

    def test_config_used_without_env(self) -> None:
        assert resolve_override(PYTORCH, EngineConfig(flavor="cu111"), "flavor") == "cu111"

    def test_empty_values_count_as_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PYTORCH_FLAVOR", "")
        assert resolve_override(PYTORCH, EngineConfig(flavor=""), "flavor") is None

    def test_version_override_matching_detected_prefix_is_ignored(self) -> None:
        config = EngineConfig(version="1.8.1")
        assert resolve_version_override(PYTORCH, config, "1.8.1-20210421") is None

    def test_version_override_differing_from_detected_applies(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PYTORCH_VERSION", "1.11.0")
        assert resolve_version_override(PYTORCH, EngineConfig(), "1.10.0") == "1.11.0"


class TestPrecxx11:
    def test_not_needed_on_linux_x86(self) -> None:
        assert needs_precxx11(PYTORCH, EngineConfig(), _platform()) is False

    def test_forced_on_linux_aarch64(self) -> None:
        assert needs_precxx11(PYTORCH, EngineConfig(), _platform(os_arch="aarch64")) is True

    def test_forced_by_config(self) -> None:
        assert needs_precxx11(PYTORCH, EngineConfig(precxx11=True), _platform()) is True

    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes"])
    def test_forced_by_env(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("PYTORCH_PRECXX11", value)
        assert needs_precxx11(PYTORCH, EngineConfig(), _platform()) is True

    def test_suffix_is_added_once(self) -> None:
        assert with_precxx11("cpu") == "cpu-precxx11"
        assert with_precxx11("cpu-precxx11") == "cpu-precxx11"


class TestResolveFlavor:
    def test_cpu_without_gpus(self) -> None:
        flavor = resolve_flavor(PYTORCH, EngineConfig(), _platform(), StaticGpuProbe(count=0))
        assert flavor == "cpu"

    def test_cpu_precxx11_on_linux_aarch64(self) -> None:
        platform = _platform(os_arch="aarch64")
        flavor = resolve_flavor(PYTORCH, EngineConfig(), platform, StaticGpuProbe(count=0))
        assert flavor == "cpu-precxx11"

    def test_cuda_flavor_from_probe(self) -> None:
        probe = StaticGpuProbe(count=2, version="11.3")
        assert resolve_flavor(PYTORCH, EngineConfig(), _platform(), probe) == "cu113"

    def test_gpu_without_cuda_version_is_cpu(self) -> None:
        probe = StaticGpuProbe(count=1, version=None)
        assert resolve_flavor(PYTORCH, EngineConfig(), _platform(), probe) == "cpu"

    def test_env_flavor_beats_probe(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PYTORCH_FLAVOR", "cpu")
        probe = StaticGpuProbe(count=1, version="11.3")
        assert resolve_flavor(PYTORCH, EngineConfig(), _platform(), probe) == "cpu"

    def test_legacy_abi_bundle_gets_suffix(self) -> None:
        platform = _platform(libraries=("libtorch.so", "libstdc++.so.6"))
        flavor = resolve_flavor(PYTORCH, EngineConfig(), platform, StaticGpuProbe())
        assert flavor == "cpu-precxx11"


class TestCudaVersionString:
    def test_major_minor(self) -> None:
        assert cuda_version_string("11.3") == "113"
        assert cuda_version_string("10.2.89") == "102"

    def test_rejects_bare_major(self) -> None:
        with pytest.raises(ValueError):
            cuda_version_string("11")
