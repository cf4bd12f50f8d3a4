# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Block parameters.

A Parameter is a named tensor whose shape is only known once the owning
block sees its input shapes. Initialization is deterministic for a given
torch.Generator: weight matrices get a scaled normal, 1-D weights are set
to 1.0 and biases to 0.0.

Binary format, self-delimiting so parameters and blocks can be
concatenated without outer length headers:

    b"P" | version (1 byte) | name length (>H) | name (utf-8)
         | payload length (>Q) | payload (torch.save of the tensor)
"""

import enum
import io
import struct
from typing import BinaryIO, Optional

import torch

from ndengine.nn.exceptions import MalformedModelError, UnsupportedVersionError

MAGIC = b"P"
VERSION = 1
DEFAULT_INIT_STD = 0.02

_NAME_LEN = struct.Struct(">H")
_PAYLOAD_LEN = struct.Struct(">Q")


class ParameterType(enum.Enum):
    WEIGHT = "weight"
    BIAS = "bias"


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """
    Read exactly `size` bytes.

    Raises:
        MalformedModelError: If the stream ends early.
    """
    data = stream.read(size)
    if len(data) != size:
        raise MalformedModelError(
            f"Unexpected end of stream: wanted {size} bytes, got {len(data)}"
        )
    return data


class Parameter:
    """
    A named, lazily shaped tensor owned by a block.

    Args:
        name: Name of the parameter within its block.
        kind: Weight or bias, selects the initializer.
        requires_grad: Whether the tensor tracks gradients once created.
    """

    def __init__(
        self,
        name: str,
        kind: ParameterType = ParameterType.WEIGHT,
        requires_grad: bool = True,
    ) -> None:
        self.name = name
        self.kind = kind
        self.requires_grad = requires_grad
        self._array: Optional[torch.Tensor] = None

    def __repr__(self) -> str:
        shape = None if self._array is None else tuple(self._array.shape)
        return f"Parameter(name={self.name!r}, kind={self.kind.value}, shape={shape})"

    @property
    def is_initialized(self) -> bool:
        return self._array is not None

    @property
    def shape(self) -> Optional[tuple[int, ...]]:
        return None if self._array is None else tuple(self._array.shape)

    @property
    def array(self) -> torch.Tensor:
        if self._array is None:
            raise RuntimeError(f"Parameter '{self.name}' is not initialized")
        return self._array

    def set_array(self, array: torch.Tensor) -> None:
        self._array = array.detach().clone().requires_grad_(
            self.requires_grad and array.is_floating_point()
        )

    def initialize(
        self,
        shape: tuple[int, ...],
        dtype: torch.dtype = torch.float32,
        generator: Optional[torch.Generator] = None,
        init_std: float = DEFAULT_INIT_STD,
    ) -> None:
        """Create the tensor for `shape` unless it already exists."""
        if self._array is not None:
            return
        with torch.no_grad():
            array = torch.empty(shape, dtype=dtype)
            if self.kind is ParameterType.BIAS:
                array.zero_()
            elif array.dim() >= 2:
                array.normal_(0.0, init_std, generator=generator)
            else:
                array.fill_(1.0)
        self.set_array(array)

    def save(self, stream: BinaryIO) -> None:
        """
        Write this parameter to `stream`.

        Raises:
            RuntimeError: If the parameter was never initialized.
        """
        buffer = io.BytesIO()
        torch.save(self.array.detach().cpu(), buffer)
        payload = buffer.getvalue()
        name = self.name.encode("utf-8")

        stream.write(MAGIC)
        stream.write(bytes([VERSION]))
        stream.write(_NAME_LEN.pack(len(name)))
        stream.write(name)
        stream.write(_PAYLOAD_LEN.pack(len(payload)))
        stream.write(payload)

    def load(self, stream: BinaryIO) -> None:
        """
        Read this parameter back from `stream`.

        Raises:
            MalformedModelError: On a bad marker, a name or shape mismatch,
                a truncated stream or an unreadable payload.
            UnsupportedVersionError: On an unknown parameter encoding version.
        """
        if read_exact(stream, 1) != MAGIC:
            raise MalformedModelError(f"Parameter '{self.name}': bad marker")
        version = read_exact(stream, 1)[0]
        if version != VERSION:
            raise UnsupportedVersionError(f"Unsupported parameter encoding version: {version}")

        (name_len,) = _NAME_LEN.unpack(read_exact(stream, _NAME_LEN.size))
        name = read_exact(stream, name_len).decode("utf-8")
        if name != self.name:
            raise MalformedModelError(f"Expected parameter '{self.name}', found '{name}'")

        (payload_len,) = _PAYLOAD_LEN.unpack(read_exact(stream, _PAYLOAD_LEN.size))
        payload = read_exact(stream, payload_len)
        try:
            array = torch.load(io.BytesIO(payload), map_location="cpu", weights_only=True)
        except Exception as err:
            raise MalformedModelError(f"Parameter '{self.name}': unreadable payload: {err}") from err
        if not isinstance(array, torch.Tensor):
            raise MalformedModelError(f"Parameter '{self.name}': payload is not a tensor")

        if self._array is not None and tuple(array.shape) != tuple(self._array.shape):
            raise MalformedModelError(
                f"Parameter '{self.name}': shape {tuple(array.shape)} does not match "
                f"initialized shape {tuple(self._array.shape)}"
            )
        self.set_array(array)
