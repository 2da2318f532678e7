"""
Graph-mode math collaborator.

`NDArrayMath` is the arithmetic object a session runtime hands to graph-mode
optimizers. Besides plain elementwise operations it offers the fused
`scaled_array_add`, which evaluates ``c1 * a + c2 * b`` with a single output
allocation instead of three.

All results register with the math object's engine, so they are reclaimed by
its scopes unless kept.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np

from ...domain._errors import ShapeMismatchError
from ..tensor._engine import Engine, get_engine
from ..tensor._tensor import Tensor


class NDArrayMath:
    """
    Tensor arithmetic bound to an `Engine`.

    Parameters
    ----------
    engine : Engine, optional
        Engine that results register with. Defaults to `get_engine()` at
        construction time.
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine = engine if engine is not None else get_engine()

    def keep(self, tensor: Tensor) -> Tensor:
        return self.engine.keep(tensor)

    @contextmanager
    def scope(self) -> Iterator[None]:
        with self.engine.scope():
            yield

    def add(self, a: Tensor, b: Tensor) -> Tensor:
        return a + b

    def subtract(self, a: Tensor, b: Tensor) -> Tensor:
        return a - b

    def multiply(self, a: Tensor, b: Tensor) -> Tensor:
        return a * b

    def divide(self, a: Tensor, b: Tensor) -> Tensor:
        return a / b

    def sqrt(self, a: Tensor) -> Tensor:
        return a.sqrt()

    def scaled_array_add(
        self, c1: Tensor, a: Tensor, c2: Tensor, b: Tensor
    ) -> Tensor:
        """
        Compute ``c1 * a + c2 * b`` in one allocation.

        Parameters
        ----------
        c1, c2 : Tensor
            Scalar (shape ``()``) coefficients.
        a, b : Tensor
            Operands of identical shape.

        Raises
        ------
        ValueError
            If `c1` or `c2` is not a scalar.
        ShapeMismatchError
            If `a` and `b` have different shapes.
        """
        if c1.shape != () or c2.shape != ():
            raise ValueError(
                f"scaled_array_add: coefficients must be scalars, "
                f"got {c1.shape} and {c2.shape}"
            )
        if a.shape != b.shape:
            raise ShapeMismatchError("scaled_array_add", a.shape, b.shape)

        out = np.multiply(c1.to_numpy(), a._read("scaled_array_add"))
        out += np.multiply(c2.to_numpy(), b._read("scaled_array_add"))
        return Tensor(out, dtype=a.dtype, engine=self.engine, copy=False)
