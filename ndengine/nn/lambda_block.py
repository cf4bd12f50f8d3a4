# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Parameterless block wrapping a plain function.

Handy for activations and reshapes inside a SequentialBlock. Output shapes
are found by running the function once on zero tensors of the input
shapes.
"""

from collections.abc import Callable, Sequence

import torch

from ndengine.nn.block import Block, Shape

LambdaFn = Callable[[Sequence[torch.Tensor]], Sequence[torch.Tensor]]


class LambdaBlock(Block):
    """Block whose forward is `fn(inputs)`."""

    def __init__(self, fn: LambdaFn) -> None:
        super().__init__()
        self.fn = fn

    def forward(self, inputs: Sequence[torch.Tensor]) -> list[torch.Tensor]:
        return list(self.fn(inputs))

    def get_output_shapes(self, input_shapes: Sequence[Shape]) -> list[Shape]:
        with torch.no_grad():
            outputs = self.fn([torch.zeros(shape) for shape in input_shapes])
        return [tuple(output.shape) for output in outputs]
