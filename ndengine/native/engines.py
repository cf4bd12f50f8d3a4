# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Engine registry for ndengine.

Each native engine differs only in data: which library is primary, which
ones have dependents and must load last, what to skip while loading, and
the environment prefix for overrides. That data lives in an EngineSpec,
and the registry maps the config-level engine name to it.

The registry is populated once at import time via ``_register_builtins()``
and stays deterministic thereafter.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSpec:
    """
    Static description of one native engine.

    Library names are base names (``torch``), mapped to file names per OS
    when used. ``cudnn_groups`` and the exclusion lists hold exact file
    names and substrings because they match files as published.
    """

    name: str
    env_prefix: str
    native_lib: str
    bridge_lib: str
    default_version: str
    deferred_cuda: tuple[str, ...] = ()
    deferred_cpu: tuple[str, ...] = ()
    excluded_substrings: tuple[str, ...] = ()
    excluded_prefixes: tuple[str, ...] = ()
    accelerator_markers: tuple[str, ...] = ()
    cudnn_groups: tuple[tuple[str, ...], ...] = ()
    aggregate_load: frozenset[tuple[str, str]] = field(default_factory=frozenset)


_ENGINE_REGISTRY: dict[str, EngineSpec] = {}


def register_engine(spec: EngineSpec) -> None:
    """
    Register an engine under its name.

    Raises:
        ValueError: If the name is already registered.
    """
    if spec.name in _ENGINE_REGISTRY:
        raise ValueError(f"Engine '{spec.name}' is already registered")
    _ENGINE_REGISTRY[spec.name] = spec
    logger.debug("registered_engine", extra={"engine": spec.name})


def get_engine(name: str) -> EngineSpec:
    """
    Retrieve a registered engine by name.

    Raises:
        KeyError: If ``name`` is not registered.
    """
    if name not in _ENGINE_REGISTRY:
        available = sorted(_ENGINE_REGISTRY.keys())
        raise KeyError(f"Unknown engine '{name}'. Available: {available}")
    return _ENGINE_REGISTRY[name]


def list_engines() -> list[str]:
    """Return sorted list of all registered engine names."""
    return sorted(_ENGINE_REGISTRY.keys())


# ── Builtin Registration ───────────────────────────────────────────────────

PYTORCH = EngineSpec(
    name="pytorch",
    env_prefix="PYTORCH",
    native_lib="torch",
    bridge_lib="djl_torch",
    default_version="1.10.0",
    deferred_cuda=(
        "fbgemm",
        "caffe2_nvrtc",
        "torch_cpu",
        "c10_cuda",
        "torch_cuda_cpp",
        "torch_cuda_cu",
        "torch_cuda",
        "torch",
    ),
    deferred_cpu=("fbgemm", "torch_cpu", "torch"),
    excluded_substrings=("torch_", "caffe2_"),
    excluded_prefixes=("cudnn",),
    accelerator_markers=("nvrtc", "cudart", "nvTools"),
    cudnn_groups=(
        (
            "cudnn64_8.dll",
            "cudnn_ops_infer64_8.dll",
            "cudnn_ops_train64_8.dll",
            "cudnn_cnn_infer64_8.dll",
            "cudnn_cnn_train64_8.dll",
            "cudnn_adv_infer64_8.dll",
            "cudnn_adv_train64_8.dll",
        ),
        ("cudnn64_7.dll",),
    ),
    # libtorch_cpu.dylib of 1.8.1 cannot be loaded on its own on macOS.
    aggregate_load=frozenset({("1.8.1", "osx")}),
)

ONNXRUNTIME = EngineSpec(
    name="onnxruntime",
    env_prefix="ONNXRUNTIME",
    native_lib="onnxruntime",
    bridge_lib="onnxruntime4j_jni",
    default_version="1.10.0",
    deferred_cuda=("onnxruntime_providers_shared", "onnxruntime_providers_cuda", "onnxruntime"),
    deferred_cpu=("onnxruntime",),
    accelerator_markers=("providers_cuda", "cudart", "cublas", "cufft", "curand"),
)

_BUILTINS_REGISTERED: bool = False


def _register_builtins() -> None:
    """Register the built-in engines. Idempotent."""
    global _BUILTINS_REGISTERED
    if _BUILTINS_REGISTERED:
        return

    register_engine(PYTORCH)
    register_engine(ONNXRUNTIME)

    _BUILTINS_REGISTERED = True
    logger.debug("builtins_registered", extra={"engines": list_engines()})


_register_builtins()
