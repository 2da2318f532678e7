"""
Tensor interface definitions.

This module defines the domain-level interface for the tensors the optimizer
consumes and produces. The interface is structural (duck-typed) so that any
backend offering explicit buffer lifetime and elementwise arithmetic can
satisfy it.

Notes
-----
The contract deliberately includes lifetime control (`dispose`,
`is_disposed`, `is_kept`): buffers are not reclaimed by the garbage collector
and must be released explicitly or by an enclosing allocation scope.
"""

from __future__ import annotations

from typing import Any, Protocol, Union, runtime_checkable

Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is an immutable numeric buffer with an explicit lifetime.
    Arithmetic never mutates an operand; it allocates a new tensor.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the shape of the tensor.
        """
        ...

    @property
    def is_disposed(self) -> bool:
        """
        Return True once the tensor's storage has been released.
        """
        ...

    @property
    def is_kept(self) -> bool:
        """
        Return True if the tensor is excluded from scope reclamation.
        """
        ...

    def dispose(self) -> None:
        """
        Release the tensor's storage.

        Raises
        ------
        DoubleReleaseError
            If the tensor has already been released.
        """
        ...

    def to_numpy(self) -> Any:
        """
        Return a host copy of the tensor's contents.
        """
        ...

    def sqrt(self) -> "ITensor":
        ...

    def square(self) -> "ITensor":
        ...

    def __add__(self, other: Union["ITensor", Number]) -> "ITensor":
        ...

    def __sub__(self, other: Union["ITensor", Number]) -> "ITensor":
        ...

    def __mul__(self, other: Union["ITensor", Number]) -> "ITensor":
        ...

    def __truediv__(self, other: Union["ITensor", Number]) -> "ITensor":
        ...
