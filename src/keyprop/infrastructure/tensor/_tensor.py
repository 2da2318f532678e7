"""
NumPy-backed tensor with explicit buffer lifetime.

`Tensor` is an immutable-value container around a NumPy array. Arithmetic
allocates a new tensor for every result; nothing is modified in place. Each
tensor is registered with an `Engine` on construction and must be released,
either by calling `dispose()` or by the allocation scope it was created in.

Design notes
------------
- Operands must have identical shapes, or one of them must be a scalar
  tensor (shape ``()``) or a Python number. General broadcasting is not
  supported; other combinations raise `ShapeMismatchError`.
- Results inherit the engine and dtype of the left-hand tensor operand.
- Python numbers used as operands do not allocate tracked tensors.
- `__array_ufunc__ = None` makes NumPy scalars on the left defer to the
  reflected operators instead of building object arrays.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

import numpy as np

from ...domain._errors import ShapeMismatchError, TensorDisposedError
from ._engine import Engine, get_engine

Number = Union[int, float]
"""Scalar types accepted by Tensor arithmetic operators."""


class Tensor:
    """
    Numeric buffer tracked by an `Engine`.

    Parameters
    ----------
    data : array-like
        Initial contents. Copied unless `copy=False`.
    dtype : numpy dtype, optional
        Storage dtype. Defaults to ``float32``.
    engine : Engine, optional
        Engine to register with. Defaults to `get_engine()`.
    copy : bool, optional
        Whether to copy `data`. Internal callers that already own a fresh
        array pass False.
    """

    __array_ufunc__ = None

    def __init__(
        self,
        data: Any,
        *,
        dtype: Any = None,
        engine: Optional[Engine] = None,
        copy: bool = True,
    ) -> None:
        dtype = np.float32 if dtype is None else dtype
        if copy:
            arr = np.array(data, dtype=dtype)
        else:
            arr = np.asarray(data, dtype=dtype)
        self._data: Optional[np.ndarray] = arr
        self._shape = tuple(arr.shape)
        self._dtype = arr.dtype
        self._engine = engine if engine is not None else get_engine()
        self._kept = False
        self._id = self._engine.next_id()
        self._engine.register(self)

    # ------------------------------------------------------------------
    # Identity / metadata
    # ------------------------------------------------------------------
    @property
    def id(self) -> int:
        return self._id

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def size(self) -> int:
        return int(np.prod(self._shape, dtype=np.int64))

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def is_disposed(self) -> bool:
        return self._data is None

    @property
    def is_kept(self) -> bool:
        return self._kept

    def __repr__(self) -> str:
        if self._data is None:
            return f"Tensor(#{self._id}, shape={self._shape}, disposed)"
        return f"Tensor(#{self._id}, shape={self._shape}, data={self._data!r})"

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------
    def dispose(self) -> None:
        """
        Release this tensor's storage.

        Raises
        ------
        DoubleReleaseError
            If the tensor has already been released.
        """
        self._engine.release(self)
        self._data = None

    def keep(self) -> "Tensor":
        return self._engine.keep(self)

    # ------------------------------------------------------------------
    # Host interop
    # ------------------------------------------------------------------
    def _read(self, op: str) -> np.ndarray:
        if self._data is None:
            raise TensorDisposedError(self._id, op)
        return self._data

    def to_numpy(self) -> np.ndarray:
        """
        Return a copy of the tensor contents as a NumPy array.
        """
        return self._read("to_numpy").copy()

    def item(self) -> float:
        return float(self._read("item").item())

    # ------------------------------------------------------------------
    # Elementwise arithmetic
    # ------------------------------------------------------------------
    def _wrap(self, arr: np.ndarray) -> "Tensor":
        return Tensor(arr, dtype=self._dtype, engine=self._engine, copy=False)

    def _binary(
        self,
        other: Union["Tensor", Number],
        op: str,
        fn: Callable[[np.ndarray, np.ndarray], np.ndarray],
        reflected: bool = False,
    ) -> "Tensor":
        a = self._read(op)
        if isinstance(other, Tensor):
            b = other._read(op)
            if a.shape != b.shape and a.ndim != 0 and b.ndim != 0:
                raise ShapeMismatchError(op, self._shape, other.shape)
        elif isinstance(other, (int, float, np.number)):
            b = np.asarray(other, dtype=self._dtype)
        else:
            return NotImplemented
        return self._wrap(fn(b, a) if reflected else fn(a, b))

    def __add__(self, other: Union["Tensor", Number]) -> "Tensor":
        return self._binary(other, "add", np.add)

    def __radd__(self, other: Number) -> "Tensor":
        return self._binary(other, "add", np.add, reflected=True)

    def __sub__(self, other: Union["Tensor", Number]) -> "Tensor":
        return self._binary(other, "sub", np.subtract)

    def __rsub__(self, other: Number) -> "Tensor":
        return self._binary(other, "sub", np.subtract, reflected=True)

    def __mul__(self, other: Union["Tensor", Number]) -> "Tensor":
        return self._binary(other, "mul", np.multiply)

    def __rmul__(self, other: Number) -> "Tensor":
        return self._binary(other, "mul", np.multiply, reflected=True)

    def __truediv__(self, other: Union["Tensor", Number]) -> "Tensor":
        return self._binary(other, "div", np.divide)

    def __rtruediv__(self, other: Number) -> "Tensor":
        return self._binary(other, "div", np.divide, reflected=True)

    def __neg__(self) -> "Tensor":
        return self._wrap(np.negative(self._read("neg")))

    def sqrt(self) -> "Tensor":
        """
        Elementwise square root (NumPy semantics: negative inputs give nan).
        """
        return self._wrap(np.sqrt(self._read("sqrt")))

    def square(self) -> "Tensor":
        return self._wrap(np.square(self._read("square")))
