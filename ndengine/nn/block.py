# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Base block for ndengine.

A block turns a list of input tensors into a list of output tensors. Its
parameters are created lazily: `initialize(input_shapes)` asks the block
for each parameter's shape given the input shapes, creates the tensors and
remembers that it did so. Calling it again is a no-op until the block's
structure changes.

Ownership is exclusive. A block has at most one parent, and attaching a
block to itself or to one of its descendants is rejected, so block trees
can't share nodes or form cycles.

Serialization writes a version byte, then each direct parameter, then
each child, in order. Every part is self-delimiting.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import BinaryIO, Optional

import torch

from ndengine.nn.exceptions import UnsupportedVersionError
from ndengine.nn.parameter import Parameter, read_exact

Shape = tuple[int, ...]


class Block(ABC):
    """
    Abstract block.

    Subclasses implement `forward` and `get_output_shapes`; blocks with
    parameters register them with `add_parameter` and implement
    `get_parameter_shape`.
    """

    VERSION: int = 1

    def __init__(self) -> None:
        self._initialized = False
        self._parent: Optional["Block"] = None
        self._parameters: dict[str, Parameter] = {}

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def parent(self) -> Optional["Block"]:
        return self._parent

    def add_parameter(self, parameter: Parameter) -> Parameter:
        if parameter.name in self._parameters:
            raise ValueError(f"Parameter '{parameter.name}' already exists")
        self._parameters[parameter.name] = parameter
        self._invalidate()
        return parameter

    def _invalidate(self) -> None:
        """Mark this block and every ancestor uninitialized after a structural change."""
        node: Optional[Block] = self
        while node is not None:
            node._initialized = False
            node = node._parent

    # ── computation ─────────────────────────────────────────────────────────

    @abstractmethod
    def forward(self, inputs: Sequence[torch.Tensor]) -> list[torch.Tensor]:
        """Run the block on a list of inputs."""
        ...

    def __call__(self, *inputs: torch.Tensor) -> list[torch.Tensor]:
        return self.forward(list(inputs))

    @abstractmethod
    def get_output_shapes(self, input_shapes: Sequence[Shape]) -> list[Shape]:
        """Output shapes this block produces for `input_shapes`."""
        ...

    # ── parameters and children ─────────────────────────────────────────────

    def get_parameter_shape(self, name: str, input_shapes: Sequence[Shape]) -> Shape:
        raise ValueError(f"{type(self).__name__} has no parameter '{name}'")

    def get_direct_parameters(self) -> list[Parameter]:
        return list(self._parameters.values())

    def get_children(self) -> dict[str, "Block"]:
        return {}

    def get_parameters(self) -> dict[str, Parameter]:
        """All parameters of this subtree, children's names prefixed with the child name."""
        parameters = {param.name: param for param in self.get_direct_parameters()}
        for child_name, child in self.get_children().items():
            for name, param in child.get_parameters().items():
                parameters[f"{child_name}_{name}"] = param
        return parameters

    def _attach(self, child: "Block") -> None:
        if not isinstance(child, Block):
            raise TypeError(f"Expected a Block, got {type(child).__name__}")
        node: Optional[Block] = self
        while node is not None:
            if node is child:
                raise ValueError("A block cannot contain itself or one of its ancestors")
            node = node._parent
        if child._parent is not None:
            raise ValueError(
                f"{type(child).__name__} already belongs to {type(child._parent).__name__}"
            )
        child._parent = self

    @staticmethod
    def _detach(child: "Block") -> None:
        child._parent = None

    # ── initialization ──────────────────────────────────────────────────────

    def before_initialize(self, input_shapes: Sequence[Shape]) -> None:
        """Validation hook run once per initialization."""
        if not input_shapes:
            raise ValueError(f"{type(self).__name__} needs at least one input shape")

    def initialize(
        self,
        input_shapes: Sequence[Shape],
        dtype: torch.dtype = torch.float32,
        generator: Optional[torch.Generator] = None,
    ) -> list[Shape]:
        """
        Create this block's parameters for `input_shapes` and return the output shapes.

        Memoized: a block that is already initialized only answers the
        shape query.
        """
        if not self._initialized:
            self.before_initialize(input_shapes)
            for parameter in self.get_direct_parameters():
                parameter.initialize(
                    self.get_parameter_shape(parameter.name, input_shapes),
                    dtype=dtype,
                    generator=generator,
                )
            self._initialized = True
        return self.get_output_shapes(input_shapes)

    # ── serialization ───────────────────────────────────────────────────────

    def save_parameters(self, stream: BinaryIO) -> None:
        stream.write(bytes([self.VERSION]))
        for parameter in self.get_direct_parameters():
            parameter.save(stream)
        for child in self.get_children().values():
            child.save_parameters(stream)

    def read_version(self, stream: BinaryIO) -> None:
        """
        Consume and check the version byte.

        Raises:
            UnsupportedVersionError: If the byte isn't this block's VERSION.
            MalformedModelError: If the stream is empty.
        """
        version = read_exact(stream, 1)[0]
        if version != self.VERSION:
            raise UnsupportedVersionError(f"Unsupported encoding version: {version}")

    def load_parameters(self, stream: BinaryIO) -> None:
        self.read_version(stream)
        for parameter in self.get_direct_parameters():
            parameter.load(stream)
        for child in self.get_children().values():
            child.load_parameters(stream)
