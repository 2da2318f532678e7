"""
RMSProp optimizer implementation.

This module provides keyprop's RMSProp optimizer. It keeps an exponentially
decayed average of squared gradients per parameter and divides each step by
its square root.

Design notes
------------
- Eager mode (`apply_gradients`) looks parameters up by name in an explicit
  `VariableRegistry` and keeps accumulators in an `AccumulatorStore`.
- Graph mode (`before_batch` / `after_example` / `after_batch`) keys
  accumulators by node output and writes through the runtime's activation
  map. The step is ``-lr / batch_size`` applied to the summed gradients.
- Both modes run the same `rmsprop_update`, one allocation scope per
  parameter (eager) or per batch (graph). Only the new accumulator and the
  new parameter value are kept; every other intermediate is reclaimed.
- The rule takes a single decay factor and has no momentum term.
- Parameters already updated when a later parameter fails stay updated;
  there is no rollback.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence
import logging

from ...domain._errors import (
    EngineMismatchError,
    InvalidConfigError,
    MissingRegistryError,
    ShapeMismatchError,
)
from .._variables import VariableRegistry
from ..graph._graph import VariableNode
from ..graph._session import BatchContext
from ..graph._tensor_array_map import TensorArrayMap
from ..tensor._engine import Engine
from ..tensor._ops import scalar, zeros
from ..tensor._tensor import Tensor
from ._accumulator_store import AccumulatorStore
from ._optimizer import BatchPhase, Optimizer
from ._rmsprop_update import (
    GraphNodeSlot,
    NamedVariableSlot,
    TensorMath,
    rmsprop_update,
)

logger = logging.getLogger(__name__)


class RMSProp(Optimizer):
    """
    RMSProp optimizer.

    Update rule
    -----------
    For each parameter ``p`` with gradient ``g``:

        cache <- decay * cache + (1 - decay) * g^2
        p     <- p - lr * g / (sqrt(cache) + eps)

    ``cache`` starts at zero and is created lazily on first use.

    Parameters
    ----------
    learning_rate : float
        Step size. Must be > 0.
    decay : float
        Weight of the accumulated history. Must be in (0, 1).
    registry : VariableRegistry, optional
        Variables updated by `apply_gradients`. Not needed in graph mode.
    epsilon : float, optional
        Added to the denominator for numerical stability. Must be > 0.
        Defaults to 1e-6.
    variable_nodes : Sequence[VariableNode], optional
        Graph mode only: nodes to train (defaults to every variable node of
        the runtime).
    engine : Engine, optional
        Engine owning the optimizer's tensors. Gradients and variables must
        live on the same engine.

    Raises
    ------
    InvalidConfigError
        If any hyper-parameter is outside its valid range.

    Notes
    -----
    - The caller must not mutate the same variables concurrently; the
      optimizer takes no locks.
    - Call `dispose()` (or use the optimizer as a context manager) to release
      the accumulators and scalar constants.
    """

    def __init__(
        self,
        learning_rate: float,
        decay: float,
        *,
        registry: Optional[VariableRegistry] = None,
        epsilon: float = 1e-6,
        variable_nodes: Optional[Sequence[VariableNode]] = None,
        engine: Optional[Engine] = None,
    ) -> None:
        self.decay = float(decay)
        self.epsilon = float(epsilon)
        if not (0.0 < self.decay < 1.0):
            raise InvalidConfigError(f"decay must be in (0,1), got {self.decay}")
        if not self.epsilon > 0.0:
            raise InvalidConfigError(f"epsilon must be > 0, got {self.epsilon}")

        super().__init__(learning_rate, variable_nodes=variable_nodes, engine=engine)
        self.registry = registry

        self._c = scalar(-self.learning_rate, engine=self.engine).keep()
        self._epsilon = scalar(self.epsilon, engine=self.engine).keep()
        self._gamma = scalar(self.decay, engine=self.engine).keep()

        self._cache = AccumulatorStore()
        self._accumulated_squared_gradients = TensorArrayMap()

    @property
    def accumulators(self) -> AccumulatorStore:
        return self._cache

    @property
    def accumulated_squared_gradients(self) -> TensorArrayMap:
        return self._accumulated_squared_gradients

    def get_accumulator(self, name: str) -> Optional[Tensor]:
        return self._cache.get(name)

    # ------------------------------------------------------------------
    # Eager mode
    # ------------------------------------------------------------------
    def apply_gradients(self, gradients: Mapping[str, Tensor]) -> None:
        """
        Apply one RMSProp step to every variable named in `gradients`.

        Variables are processed in the iteration order of `gradients`, each
        in its own allocation scope.

        Raises
        ------
        UnknownParameterError
            If a name is not registered.
        ShapeMismatchError
            If a gradient's shape differs from its variable's. Scalar
            gradients are not broadcast.
        EngineMismatchError
            If a gradient or variable is tracked by another engine.
        MissingRegistryError
            If the optimizer was constructed without a registry.
        OptimizerDisposedError
            If the optimizer has been disposed.
        """
        self._check_not_disposed("apply_gradients")
        if self.registry is None:
            raise MissingRegistryError("apply_gradients")

        math = TensorMath(self.engine)
        for name, gradient in gradients.items():
            variable = self.registry[name]
            # checked before the slot touches the accumulator
            if gradient.engine is not self.engine or (
                variable.value.engine is not self.engine
            ):
                raise EngineMismatchError("apply_gradients", name)
            if gradient.shape != variable.shape:
                raise ShapeMismatchError(
                    "apply_gradients", variable.shape, gradient.shape
                )
            slot = NamedVariableSlot(variable, self._cache)
            with math.scope():
                rmsprop_update(
                    slot,
                    gradient,
                    math,
                    one=self.one,
                    gamma=self._gamma,
                    epsilon=self._epsilon,
                    c=self._c,
                )

    # ------------------------------------------------------------------
    # Graph mode
    # ------------------------------------------------------------------
    def before_batch(self, context: BatchContext) -> None:
        super().before_batch(context)
        if self._accumulated_squared_gradients.size() == 0:
            for node in self.variable_nodes:
                self._accumulated_squared_gradients.set(
                    node.output,
                    zeros(node.output.shape, engine=context.math.engine).keep(),
                )
            logger.debug(
                "Created %d graph accumulators", len(self.variable_nodes)
            )

    def after_batch(self, context: BatchContext) -> None:
        """
        Apply the batch's summed gradients to every trainable node, then
        reset the gradient sums.
        """
        self._check_not_disposed("after_batch")
        self._check_phase(BatchPhase.IN_BATCH, "after_batch")

        math = context.math
        with math.scope():
            for node in self.variable_nodes:
                slot = GraphNodeSlot(
                    node, context.activation_map, self._accumulated_squared_gradients
                )
                rmsprop_update(
                    slot,
                    self.variable_gradients.get(node.output),
                    math,
                    one=self.one,
                    gamma=self._gamma,
                    epsilon=self._epsilon,
                    c=self.c_graph,
                )

        self._finish_batch()

    # ------------------------------------------------------------------
    # Config / lifecycle
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return the hyper-parameters as a JSON-friendly dict.
        """
        return {
            "learning_rate": self.learning_rate,
            "decay": self.decay,
            "epsilon": self.epsilon,
        }

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        *,
        registry: Optional[VariableRegistry] = None,
        engine: Optional[Engine] = None,
    ) -> "RMSProp":
        return cls(
            learning_rate=float(cfg["learning_rate"]),
            decay=float(cfg["decay"]),
            epsilon=float(cfg.get("epsilon", 1e-6)),
            registry=registry,
            engine=engine,
        )

    def dispose(self) -> None:
        """
        Release the scalar constants, the graph accumulators and every eager
        accumulator.

        Safe to call more than once; later calls do nothing.
        """
        if self.is_disposed:
            logger.debug("RMSProp already disposed")
            return
        self._gamma.dispose()
        self._epsilon.dispose()
        self._c.dispose()
        if self._accumulated_squared_gradients.size() > 0:
            self._accumulated_squared_gradients.dispose()
        self._cache.dispose()
        super().dispose()
