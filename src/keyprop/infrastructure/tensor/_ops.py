"""
Tensor factory functions.

All factories allocate a tracked tensor on `engine` (the default engine when
omitted). Inside an open scope the result is reclaimed at scope exit unless
it is kept.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from ._engine import Engine
from ._tensor import Number, Tensor


def tensor(
    values: Any, *, dtype: Any = None, engine: Optional[Engine] = None
) -> Tensor:
    """
    Create a tensor from array-like `values` (copied).
    """
    return Tensor(values, dtype=dtype, engine=engine)


def scalar(
    value: Number, *, dtype: Any = None, engine: Optional[Engine] = None
) -> Tensor:
    """
    Create a rank-0 tensor holding `value`.

    Raises
    ------
    ValueError
        If `value` is not a single number.
    """
    arr = np.asarray(value)
    if arr.ndim != 0:
        raise ValueError(f"scalar() expects a single number, got shape {arr.shape}")
    return Tensor(arr, dtype=dtype, engine=engine)


def zeros(
    shape: Sequence[int], *, dtype: Any = None, engine: Optional[Engine] = None
) -> Tensor:
    dtype = np.float32 if dtype is None else dtype
    return Tensor(
        np.zeros(tuple(shape), dtype=dtype), dtype=dtype, engine=engine, copy=False
    )


def zeros_like(t: Tensor, *, engine: Optional[Engine] = None) -> Tensor:
    """
    Create a zero tensor with the shape and dtype of `t`.

    The new tensor registers with `t`'s engine unless `engine` is given.
    """
    return zeros(t.shape, dtype=t.dtype, engine=engine or t.engine)
