"""
Domain-level optimizer contracts for keyprop.

This module defines the protocols that separate *what* an optimizer updates
from *how* its update rule is computed:

- `IOptimizer`: the eager surface (`apply_gradients`, `dispose`).
- `IGraphOptimizer`: the optional graph-mode surface, driven by a session
  runtime once per batch.
- `IUpdateSlot`: the per-parameter state an update rule reads and writes
  (the current value and the squared-gradient accumulator).
- `IUpdateMath`: the arithmetic an update rule needs, including the fused
  scaled-add primitive.

Notes
-----
- Domain contracts are backend-agnostic and must not depend on NumPy or
  infrastructure implementations.
- Graph mode is modelled as a separate capability because most callers only
  use the eager path.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from ._tensor import ITensor


@runtime_checkable
class IOptimizer(Protocol):
    """
    Eager optimizer interface contract.

    Required methods
    ----------------
    - `apply_gradients()` updates the named parameters in place.
    - `dispose()` releases every buffer the optimizer owns.
    """

    def apply_gradients(self, gradients: Mapping[str, ITensor]) -> None:
        """
        Apply one update to every parameter named in `gradients`.

        Gradients are owned by the caller; the optimizer never releases them.
        """
        ...

    def dispose(self) -> None:
        """
        Release all optimizer-owned buffers.
        """
        ...


@runtime_checkable
class IGraphOptimizer(Protocol):
    """
    Graph-mode optimizer capability.

    A session runtime drives the phases once per batch, strictly in the
    order ``before_batch`` → ``after_example`` (per example) →
    ``after_batch``. `context` bundles the math collaborator, batch size,
    runtime handle, and the activation/gradient maps.
    """

    def before_batch(self, context: Any) -> None:
        ...

    def after_example(self, context: Any) -> None:
        ...

    def after_batch(self, context: Any) -> None:
        ...


@runtime_checkable
class IUpdateSlot(Protocol):
    """
    Read/write access to the state of a single parameter.

    Setters take ownership of the given (already kept) tensor and release
    the tensor they replace, so that at most one live buffer exists per slot.
    """

    def get_value(self) -> ITensor:
        ...

    def set_value(self, value: ITensor) -> None:
        ...

    def get_accumulator(self) -> ITensor:
        ...

    def set_accumulator(self, accumulator: ITensor) -> None:
        ...


@runtime_checkable
class IUpdateMath(Protocol):
    """
    Arithmetic used by update rules.

    Every method allocates a new tensor; no operand is modified.
    """

    def add(self, a: ITensor, b: ITensor) -> ITensor:
        ...

    def subtract(self, a: ITensor, b: ITensor) -> ITensor:
        ...

    def multiply(self, a: ITensor, b: ITensor) -> ITensor:
        ...

    def divide(self, a: ITensor, b: ITensor) -> ITensor:
        ...

    def sqrt(self, a: ITensor) -> ITensor:
        ...

    def scaled_array_add(
        self, c1: ITensor, a: ITensor, c2: ITensor, b: ITensor
    ) -> ITensor:
        """
        Return ``c1 * a + c2 * b`` where `c1` and `c2` are scalars.
        """
        ...

    def keep(self, tensor: ITensor) -> ITensor:
        """
        Exclude `tensor` from scope reclamation and return it.
        """
        ...
