# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Accelerator probe.

Flavor selection only needs two facts: how many CUDA devices are visible
and which CUDA version the runtime was built against. Both come from
torch. The probe is a small protocol so tests (and hosts with exotic
setups) can substitute their own answers.
"""

from typing import Optional, Protocol

import torch


class GpuProbe(Protocol):
    """What flavor resolution needs to know about accelerators."""

    def gpu_count(self) -> int: ...

    def cuda_version(self) -> Optional[str]: ...


class TorchGpuProbe:
    """Probe backed by torch.cuda."""

    def gpu_count(self) -> int:
        if not torch.cuda.is_available():
            return 0
        return torch.cuda.device_count()

    def cuda_version(self) -> Optional[str]:
        return torch.version.cuda


class StaticGpuProbe:
    """Probe with fixed answers."""

    def __init__(self, count: int = 0, version: Optional[str] = None) -> None:
        self._count = count
        self._version = version

    def gpu_count(self) -> int:
        return self._count

    def cuda_version(self) -> Optional[str]:
        return self._version


def cuda_version_string(version: str) -> str:
    """Turn "11.3" (or "11.3.1") into the flavor suffix "113"."""
    parts = version.split(".")
    if len(parts) < 2:
        raise ValueError(f"Unexpected CUDA version: {version}")
    return parts[0] + parts[1]
