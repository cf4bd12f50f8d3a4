# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Dense layer with a lazily inferred input width.

The number of input features is taken from the last dimension of the
first input shape at initialization time, so a Linear can be declared
with only its output width.
"""

from collections.abc import Sequence

import torch
import torch.nn.functional as F

from ndengine.nn.block import Block, Shape
from ndengine.nn.parameter import Parameter, ParameterType


class Linear(Block):
    """
    y = x @ weight.T + bias

    Args:
        units: Output width.
        use_bias: Whether to add a bias vector.
    """

    def __init__(self, units: int, use_bias: bool = True) -> None:
        super().__init__()
        if units < 1:
            raise ValueError(f"units must be >= 1, got {units}")
        self.units = units
        self.weight = self.add_parameter(Parameter("weight", ParameterType.WEIGHT))
        self.bias = self.add_parameter(Parameter("bias", ParameterType.BIAS)) if use_bias else None

    def get_parameter_shape(self, name: str, input_shapes: Sequence[Shape]) -> Shape:
        if name == "weight":
            return (self.units, input_shapes[0][-1])
        if name == "bias":
            return (self.units,)
        return super().get_parameter_shape(name, input_shapes)

    def before_initialize(self, input_shapes: Sequence[Shape]) -> None:
        super().before_initialize(input_shapes)
        if len(input_shapes[0]) < 1:
            raise ValueError("Linear needs inputs with at least one dimension")

    def get_output_shapes(self, input_shapes: Sequence[Shape]) -> list[Shape]:
        return [tuple(input_shapes[0][:-1]) + (self.units,)]

    def forward(self, inputs: Sequence[torch.Tensor]) -> list[torch.Tensor]:
        bias = self.bias.array if self.bias is not None else None
        return [F.linear(inputs[0], self.weight.array, bias)]
