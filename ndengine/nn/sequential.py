# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
SequentialBlock: children run one after another.

The output of child i is the input of child i + 1. A SequentialBlock has
no parameters of its own; everything it owns lives in its children, which
are serialized in order behind a single version byte.
"""

from collections.abc import Callable, Sequence
from typing import BinaryIO, Optional, Union

import torch

from ndengine.nn.block import Block, Shape
from ndengine.nn.exceptions import EmptyCompositeError
from ndengine.nn.lambda_block import LambdaBlock


def _as_block(block: Union[Block, Callable]) -> Block:
    if isinstance(block, Block):
        return block
    if not callable(block):
        raise TypeError(f"Expected a Block or callable, got {type(block).__name__}")
    return LambdaBlock(block)


class SequentialBlock(Block):
    """
    Ordered list of child blocks.

    Mutating the list marks the block and its ancestors uninitialized, so
    the next `initialize` call on any of them walks the children again.
    """

    def __init__(self) -> None:
        super().__init__()
        self._children: list[Block] = []

    def __len__(self) -> int:
        return len(self._children)

    def add(self, block: Union[Block, Callable]) -> "SequentialBlock":
        """
        Append a block. A plain callable is wrapped in a LambdaBlock.

        Raises:
            TypeError: If `block` is neither a Block nor callable.
            ValueError: If the block already has a parent or is an ancestor of this one.
        """
        block = _as_block(block)
        self._attach(block)
        self._children.append(block)
        self._invalidate()
        return self

    def add_all(self, *blocks: Union[Block, Callable]) -> "SequentialBlock":
        for block in blocks:
            self.add(block)
        return self

    def remove_last_block(self) -> Block:
        if not self._children:
            raise EmptyCompositeError("SequentialBlock has no children to remove")
        block = self._children.pop()
        self._detach(block)
        self._invalidate()
        return block

    def replace_last_block(self, block: Union[Block, Callable]) -> Block:
        """Swap the last child for `block` and return the old one."""
        if not self._children:
            raise EmptyCompositeError("SequentialBlock has no children to replace")
        block = _as_block(block)
        old = self._children[-1]
        self._detach(old)
        try:
            self._attach(block)
        except (TypeError, ValueError):
            self._attach(old)
            raise
        self._children[-1] = block
        self._invalidate()
        return old

    def forward(self, inputs: Sequence[torch.Tensor]) -> list[torch.Tensor]:
        current = list(inputs)
        for child in self._children:
            current = child.forward(current)
        return current

    def initialize(
        self,
        input_shapes: Sequence[Shape],
        dtype: torch.dtype = torch.float32,
        generator: Optional[torch.Generator] = None,
    ) -> list[Shape]:
        if self._initialized:
            return self.get_output_shapes(input_shapes)
        if not self._children:
            raise EmptyCompositeError("Cannot initialize a SequentialBlock with no children")
        shapes = list(input_shapes)
        for child in self._children:
            shapes = child.initialize(shapes, dtype=dtype, generator=generator)
        self._initialized = True
        return shapes

    def get_output_shapes(self, input_shapes: Sequence[Shape]) -> list[Shape]:
        if not self._children:
            raise EmptyCompositeError("The sequential block is empty")
        shapes = list(input_shapes)
        for child in self._children:
            shapes = child.get_output_shapes(shapes)
        return shapes

    def get_direct_parameters(self) -> list:
        return []

    def get_parameter_shape(self, name: str, input_shapes: Sequence[Shape]) -> Shape:
        raise ValueError("SequentialBlock has no direct parameters")

    def get_children(self) -> dict[str, Block]:
        """Children keyed `{index}:{TypeName}`, index zero-padded to the count's width."""
        width = len(str(len(self._children)))
        return {
            f"{i:0{width}d}:{type(child).__name__}": child
            for i, child in enumerate(self._children)
        }

    def save_parameters(self, stream: BinaryIO) -> None:
        stream.write(bytes([self.VERSION]))
        for child in self._children:
            child.save_parameters(stream)

    def load_parameters(self, stream: BinaryIO) -> None:
        self.read_version(stream)
        for child in self._children:
            child.load_parameters(stream)
