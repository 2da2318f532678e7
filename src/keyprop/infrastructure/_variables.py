"""
Named, mutable training variables and the registry that owns them.

A `Variable` holds a kept `Tensor` and replaces it wholesale on `assign`;
tensors themselves are immutable. A `VariableRegistry` maps unique names to
variables and is handed explicitly to optimizers, which look parameters up
by the names used in their gradient mappings.

Design notes
------------
- The registry, not the optimizer, owns variables. Optimizers only call
  `assign`.
- `assign` keeps the incoming tensor and releases the previous value in the
  same call, so a variable never holds more than one live buffer.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Optional

from ..domain._errors import ShapeMismatchError, UnknownParameterError
from .tensor._engine import Engine
from .tensor._tensor import Tensor


class Variable:
    """
    Named trainable tensor.

    Parameters
    ----------
    name : str
        Unique variable name.
    initial : Tensor or array-like
        Initial value. A `Tensor` is adopted (and kept); anything else is
        copied into a new tensor on `engine`.
    engine : Engine, optional
        Engine for values created from array-likes.
    """

    def __init__(
        self, name: str, initial: Any, *, engine: Optional[Engine] = None
    ) -> None:
        if not isinstance(initial, Tensor):
            initial = Tensor(initial, engine=engine)
        self.name = str(name)
        self._value: Optional[Tensor] = initial.keep()

    @property
    def value(self) -> Tensor:
        if self._value is None:
            raise RuntimeError(f"Variable '{self.name}' has been disposed.")
        return self._value

    @property
    def shape(self) -> tuple[int, ...]:
        return self.value.shape

    def assign(self, new_value: Tensor) -> None:
        """
        Replace the variable's value with `new_value`.

        The new tensor is kept; the previous value is released.

        Raises
        ------
        ShapeMismatchError
            If `new_value` does not have the variable's shape.
        """
        old = self.value
        if new_value.shape != old.shape:
            raise ShapeMismatchError("assign", old.shape, new_value.shape)
        if new_value is old:
            return
        self._value = new_value.keep()
        old.dispose()

    def to_numpy(self):
        return self.value.to_numpy()

    def dispose(self) -> None:
        if self._value is not None:
            self._value.dispose()
            self._value = None

    def __repr__(self) -> str:
        return f"Variable(name={self.name!r}, value={self._value!r})"


class VariableRegistry:
    """
    Name → `Variable` mapping.

    Parameters
    ----------
    engine : Engine, optional
        Engine used for variables created from array-likes.
    """

    def __init__(self, *, engine: Optional[Engine] = None) -> None:
        self._engine = engine
        self._variables: Dict[str, Variable] = {}

    def add(self, name: str, initial: Any) -> Variable:
        """
        Register a new variable.

        Raises
        ------
        ValueError
            If `name` is already registered.
        """
        if name in self._variables:
            raise ValueError(f"Variable '{name}' is already registered.")
        var = Variable(name, initial, engine=self._engine)
        self._variables[name] = var
        return var

    def __getitem__(self, name: str) -> Variable:
        try:
            return self._variables[name]
        except KeyError:
            raise UnknownParameterError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self) -> Iterator[str]:
        return iter(self._variables)

    def dispose(self) -> None:
        """
        Dispose every variable and empty the registry.
        """
        for var in self._variables.values():
            var.dispose()
        self._variables.clear()
