# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""Exceptions raised by NDArray operations."""


class ShapeMismatchError(ValueError):
    """Raised when two operand shapes can't be broadcast to a common shape."""
