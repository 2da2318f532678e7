"""
Shared RMSProp update rule and its state adapters.

The update formula is written once, in `rmsprop_update`, against two small
capability interfaces from the domain layer:

- `IUpdateSlot` abstracts where a parameter's value and accumulator live.
  `NamedVariableSlot` reads/writes a registry variable and an
  `AccumulatorStore` (eager mode); `GraphNodeSlot` reads/writes the
  activation map, a per-node accumulator map and `node.data` (graph mode).
- `IUpdateMath` abstracts the arithmetic. `TensorMath` composes elementwise
  tensor operators (eager mode); graph mode passes the runtime's
  `NDArrayMath`, whose `scaled_array_add` is fused. Both evaluate the same
  float operations in the same order, so results are identical.

`rmsprop_update` must run inside an allocation scope: every intermediate it
allocates is left for the scope to reclaim, and only the new accumulator
and the new value are kept.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from ...domain._optimizers import IUpdateMath, IUpdateSlot
from .._variables import Variable
from ..graph._graph import VariableNode
from ..graph._tensor_array_map import TensorArrayMap
from ..tensor._engine import Engine
from ..tensor._tensor import Tensor
from ._accumulator_store import AccumulatorStore


def rmsprop_update(
    slot: IUpdateSlot,
    gradient: Tensor,
    math: IUpdateMath,
    *,
    one: Tensor,
    gamma: Tensor,
    epsilon: Tensor,
    c: Tensor,
) -> None:
    """
    Apply one RMSProp step to a single parameter.

    Update rule
    -----------
        cache' = gamma * cache + (1 - gamma) * g^2
        value' = c * (g / (sqrt(cache') + epsilon)) + value

    where ``c`` is the negated (possibly batch-scaled) learning rate.

    Notes
    -----
    - There is no momentum term; `gamma` is the only decay hyper-parameter.
    - Both results are computed before either is installed, so a failing
      operation leaves the slot untouched. The previous accumulator is
      released when the new one is installed; the previous value is
      released by `slot.set_value`.
    """
    old_value = slot.get_value()
    old_cache = slot.get_accumulator()

    gradient_square = math.multiply(gradient, gradient)
    cache = math.scaled_array_add(
        gamma, old_cache, math.subtract(one, gamma), gradient_square
    )
    value = math.scaled_array_add(
        c, math.divide(gradient, math.add(math.sqrt(cache), epsilon)), one, old_value
    )

    slot.set_accumulator(math.keep(cache))
    slot.set_value(math.keep(value))


class TensorMath:
    """
    `IUpdateMath` built from the tensor's own elementwise operators.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

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
        return c1 * a + c2 * b


class NamedVariableSlot:
    """
    Parameter state addressed by variable name (eager mode).
    """

    def __init__(self, variable: Variable, store: AccumulatorStore) -> None:
        self._variable = variable
        self._store = store

    def get_value(self) -> Tensor:
        return self._variable.value

    def set_value(self, value: Tensor) -> None:
        self._variable.assign(value)

    def get_accumulator(self) -> Tensor:
        return self._store.get_or_create(self._variable.name, self._variable.value)

    def set_accumulator(self, accumulator: Tensor) -> None:
        self._store.replace(self._variable.name, accumulator)


class GraphNodeSlot:
    """
    Parameter state addressed by graph node (graph mode).

    The value lives in the activation map under ``node.output`` and is
    mirrored onto ``node.data``; the accumulator lives in a per-node map.
    """

    def __init__(
        self,
        node: VariableNode,
        activation_map: TensorArrayMap,
        accumulators: TensorArrayMap,
    ) -> None:
        self._node = node
        self._activations = activation_map
        self._accumulators = accumulators

    def get_value(self) -> Tensor:
        return self._activations.get(self._node.output)

    def set_value(self, value: Tensor) -> None:
        old = self._activations.get(self._node.output)
        self._activations.set(self._node.output, value)
        self._node.data = value
        if old is not value:
            old.dispose()

    def get_accumulator(self) -> Tensor:
        return self._accumulators.get(self._node.output)

    def set_accumulator(self, accumulator: Tensor) -> None:
        old = self._accumulators.get(self._node.output)
        self._accumulators.set(self._node.output, accumulator)
        if old is not accumulator:
            old.dispose()
