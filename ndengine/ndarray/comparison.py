# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Elementwise comparison semantics for NDArrays.

NDArrays are torch tensors. The kernels are torch's; what this module pins
down is the behaviour at the edges, which differs between engines if left
to them:

  - shapes broadcast with the trailing-dimension rule, and a failure is a
    ShapeMismatchError rather than an engine-specific RuntimeError;
  - closeness is |a - b| <= atol + rtol * |b| (asymmetric in b);
  - NaN matches NaN only when asked to, NaN never matches a number;
  - arrays with a zero-size dimension compare vacuously: all_close is true
    when the shapes co-broadcast and false when they don't, and the
    elementwise operators return an empty array of the broadcast shape
    (boolean for comparisons, the operand dtype for maximum, minimum and
    where);
  - content_equals is exact: different dtypes are never equal.

Every function is pure and safe to call from multiple threads.
"""

from collections.abc import Callable, Sequence
from typing import Optional, Union

import torch

from ndengine.ndarray.exceptions import ShapeMismatchError

Operand = Union[torch.Tensor, bool, int, float]

DEFAULT_RTOL = 1e-5
DEFAULT_ATOL = 1e-8


def broadcast_shape(shape_a: Sequence[int], shape_b: Sequence[int]) -> tuple[int, ...]:
    """
    Broadcast two shapes with the trailing-dimension rule.

    Dimensions are aligned from the right; each pair must be equal or
    contain a 1, and missing leading dimensions count as 1.

    >>> broadcast_shape((4, 3, 2, 1, 0), (1, 0))
    (4, 3, 2, 1, 0)

    Raises:
        ShapeMismatchError: If the shapes are not compatible.
    """
    result: list[int] = []
    for offset in range(1, max(len(shape_a), len(shape_b)) + 1):
        dim_a = shape_a[-offset] if offset <= len(shape_a) else 1
        dim_b = shape_b[-offset] if offset <= len(shape_b) else 1
        if dim_a == dim_b or dim_b == 1:
            result.append(dim_a)
        elif dim_a == 1:
            result.append(dim_b)
        else:
            raise ShapeMismatchError(
                f"Shapes {tuple(shape_a)} and {tuple(shape_b)} cannot be broadcast together"
            )
    return tuple(reversed(result))


def _as_tensor(value: Operand) -> torch.Tensor:
    return value if isinstance(value, torch.Tensor) else torch.as_tensor(value)


def _is_empty(shape: Sequence[int]) -> bool:
    return any(dim == 0 for dim in shape)


def _compare(
    a: Operand,
    b: Operand,
    op: Callable[[torch.Tensor, torch.Tensor], torch.Tensor],
    result_dtype: Optional[torch.dtype] = torch.bool,
) -> torch.Tensor:
    """Broadcast-checked binary op. `result_dtype=None` keeps the promoted input dtype."""
    left = _as_tensor(a)
    right = _as_tensor(b)
    shape = broadcast_shape(left.shape, right.shape)
    if _is_empty(shape):
        dtype = result_dtype if result_dtype is not None else torch.result_type(left, right)
        return torch.empty(shape, dtype=dtype)
    return op(left, right)


def eq(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise a == b."""
    return _compare(a, b, torch.eq)


def neq(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise a != b."""
    return _compare(a, b, torch.ne)


def gt(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise a > b."""
    return _compare(a, b, torch.gt)


def gte(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise a >= b."""
    return _compare(a, b, torch.ge)


def lt(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise a < b."""
    return _compare(a, b, torch.lt)


def lte(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise a <= b."""
    return _compare(a, b, torch.le)


def maximum(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise max(a, b) in the promoted dtype of the operands."""
    return _compare(a, b, torch.maximum, result_dtype=None)


def minimum(a: Operand, b: Operand) -> torch.Tensor:
    """Elementwise min(a, b) in the promoted dtype of the operands."""
    return _compare(a, b, torch.minimum, result_dtype=None)


def where(condition: Operand, a: Operand, b: Operand) -> torch.Tensor:
    """
    Pick `a` where `condition` holds and `b` elsewhere.

    All three operands broadcast together. `condition` is read as boolean,
    so a numeric mask selects `a` wherever it is non-zero.

    Raises:
        ShapeMismatchError: If the three shapes don't broadcast.
    """
    mask = _as_tensor(condition).to(torch.bool)
    left = _as_tensor(a)
    right = _as_tensor(b)
    shape = broadcast_shape(mask.shape, broadcast_shape(left.shape, right.shape))
    if _is_empty(shape):
        return torch.empty(shape, dtype=torch.result_type(left, right))
    return torch.where(mask, left, right)


def _promote(left: torch.Tensor, right: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
    # Integer and bool arrays are compared in float64 so |a - b| can't overflow or underflow.
    common = torch.promote_types(left.dtype, right.dtype)
    if not (common.is_floating_point or common.is_complex):
        common = torch.float64
    return left.to(common), right.to(common)


def is_close(
    a: Operand,
    b: Operand,
    rtol: float = DEFAULT_RTOL,
    atol: float = DEFAULT_ATOL,
    equal_nan: bool = False,
) -> torch.Tensor:
    """
    Elementwise closeness test.

    An element matches when ``|a - b| <= atol + rtol * |b|``, when both are
    the same infinity, or, with ``equal_nan``, when both are NaN.

    Raises:
        ShapeMismatchError: If the shapes don't broadcast.
    """
    left, right = _promote(_as_tensor(a), _as_tensor(b))
    shape = broadcast_shape(left.shape, right.shape)
    if _is_empty(shape):
        return torch.empty(shape, dtype=torch.bool)

    left, right = torch.broadcast_tensors(left, right)
    finite = torch.isfinite(left) & torch.isfinite(right)
    close = finite & (torch.abs(left - right) <= atol + rtol * torch.abs(right))
    close = close | (left == right)
    if equal_nan:
        close = close | (torch.isnan(left) & torch.isnan(right))
    return close


def all_close(
    a: Operand,
    b: Operand,
    rtol: float = DEFAULT_RTOL,
    atol: float = DEFAULT_ATOL,
    equal_nan: bool = False,
) -> bool:
    """
    True when every element pair of `a` and `b` is close.

    With a zero-size dimension on either side there is nothing to compare:
    the result is True if the shapes co-broadcast and False if they don't,
    e.g. (4, 0) vs (4, 0) is True, (0, 0, 2) vs (2, 0, 0) is False.

    Raises:
        ShapeMismatchError: If non-empty shapes don't broadcast.
    """
    left = _as_tensor(a)
    right = _as_tensor(b)
    if _is_empty(left.shape) or _is_empty(right.shape):
        try:
            broadcast_shape(left.shape, right.shape)
        except ShapeMismatchError:
            return False
        return True
    return bool(is_close(left, right, rtol, atol, equal_nan).all())


def content_equals(a: torch.Tensor, b: torch.Tensor) -> bool:
    """
    Exact equality of dtype, shape and every element.

    Unlike `eq`, this never broadcasts and never raises: (2, 3) vs (1, 3)
    is simply False, as is float32 4.0 vs int64 4. Two empty arrays of the
    same shape and dtype are equal.
    """
    if a.dtype != b.dtype:
        return False
    if a.shape != b.shape:
        return False
    if _is_empty(a.shape):
        return True
    return bool(torch.equal(a, b))
