"""
Base class shared by keyprop optimizers.

`Optimizer` owns the state every optimizer needs in both execution modes:

- the learning rate and the kept scalar ``one``;
- for graph mode, the batch-scaled step ``c_graph = -lr / batch_size``, the
  list of trainable nodes, and the per-batch summed gradients
  (`variable_gradients`);
- the batch phase state machine and the disposed flag.

Design notes
------------
- Graph-mode gradients are summed over the examples of a batch in
  `after_example`; scaling the step by ``1 / batch_size`` turns the sum into
  a mean.
- Optimizers never release variables or node data; those belong to the
  registry and the graph respectively.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence
import logging

from ...domain._errors import (
    BatchProtocolError,
    InvalidConfigError,
    OptimizerDisposedError,
)
from ..graph._graph import VariableNode
from ..graph._session import BatchContext
from ..graph._tensor_array_map import TensorArrayMap
from ..tensor._engine import Engine, get_engine
from ..tensor._ops import scalar, zeros
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


class BatchPhase(Enum):
    AWAITING_BATCH = "awaiting_batch"
    IN_BATCH = "in_batch"


class Optimizer(ABC):
    """
    Abstract optimizer with eager and graph-mode entry points.

    Parameters
    ----------
    learning_rate : float
        Step size. Must be > 0.
    variable_nodes : Sequence[VariableNode], optional
        Graph mode only: the nodes to train. When omitted, every
        `VariableNode` of the runtime's evaluation set is trained.
    engine : Engine, optional
        Engine that owns the optimizer's tensors. Defaults to `get_engine()`.

    Raises
    ------
    InvalidConfigError
        If ``learning_rate <= 0``.
    """

    def __init__(
        self,
        learning_rate: float,
        *,
        variable_nodes: Optional[Sequence[VariableNode]] = None,
        engine: Optional[Engine] = None,
    ) -> None:
        self.learning_rate = float(learning_rate)
        if not self.learning_rate > 0.0:
            raise InvalidConfigError(
                f"learning_rate must be > 0, got {self.learning_rate}"
            )

        self.engine = engine if engine is not None else get_engine()
        self.specified_variable_nodes: Optional[List[VariableNode]] = (
            list(variable_nodes) if variable_nodes is not None else None
        )
        self.variable_nodes: List[VariableNode] = []
        self.variable_gradients = TensorArrayMap()
        self.prev_batch_size: Optional[int] = None

        self.one: Tensor = scalar(1.0, engine=self.engine).keep()
        self.c_graph: Optional[Tensor] = None

        self._phase = BatchPhase.AWAITING_BATCH
        self._disposed = False

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------
    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def phase(self) -> BatchPhase:
        return self._phase

    def _check_not_disposed(self, op: str) -> None:
        if self._disposed:
            raise OptimizerDisposedError(op)

    def _check_phase(self, expected: BatchPhase, op: str) -> None:
        if self._phase is not expected:
            raise BatchProtocolError(
                f"{op} called in phase '{self._phase.value}', "
                f"expected '{expected.value}'."
            )

    # ------------------------------------------------------------------
    # Eager mode
    # ------------------------------------------------------------------
    @abstractmethod
    def apply_gradients(self, gradients: Mapping[str, Tensor]) -> None:
        """
        Update every variable named in `gradients`.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Graph mode
    # ------------------------------------------------------------------
    def before_batch(self, context: BatchContext) -> None:
        """
        Prepare for a new batch.

        Resolves the trainable nodes, refreshes ``c_graph`` when the batch
        size changes, and installs a kept zero gradient sum per node.

        Raises
        ------
        ValueError
            If ``context.batch_size < 1``.
        BatchProtocolError
            If the previous batch has not been finished with `after_batch`.
        """
        self._check_not_disposed("before_batch")
        self._check_phase(BatchPhase.AWAITING_BATCH, "before_batch")
        if context.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {context.batch_size}")

        if self.specified_variable_nodes is not None:
            self.variable_nodes = list(self.specified_variable_nodes)
        else:
            self.variable_nodes = context.runtime.variable_nodes()

        if context.batch_size != self.prev_batch_size:
            if self.c_graph is not None:
                self.c_graph.dispose()
            self.prev_batch_size = context.batch_size
            self.c_graph = scalar(
                -self.learning_rate / context.batch_size,
                engine=context.math.engine,
            ).keep()
            logger.debug("Graph step rescaled for batch size %d", context.batch_size)

        for node in self.variable_nodes:
            self.variable_gradients.set(
                node.output,
                zeros(node.output.shape, engine=context.math.engine).keep(),
            )
        self._phase = BatchPhase.IN_BATCH

    def after_example(self, context: BatchContext) -> None:
        """
        Add the current example's gradients into the batch sums.
        """
        self._check_not_disposed("after_example")
        self._check_phase(BatchPhase.IN_BATCH, "after_example")
        math = context.math
        with math.scope():
            for node in self.variable_nodes:
                gradient = context.gradient_map.get(node.output)
                accumulated = self.variable_gradients.get(node.output)
                self.variable_gradients.set(
                    node.output, math.keep(math.add(gradient, accumulated))
                )
                accumulated.dispose()

    @abstractmethod
    def after_batch(self, context: BatchContext) -> None:
        """
        Apply the batch's summed gradients to the trainable nodes.
        """
        raise NotImplementedError

    def _finish_batch(self) -> None:
        self.variable_gradients.dispose()
        self.variable_gradients = TensorArrayMap()
        self._phase = BatchPhase.AWAITING_BATCH

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def dispose(self) -> None:
        """
        Release the scalars and pending gradient sums owned by the base.

        Safe to call more than once; later calls do nothing.
        """
        if self._disposed:
            logger.debug("%s already disposed", type(self).__name__)
            return
        self._disposed = True
        self.one.dispose()
        if self.c_graph is not None:
            self.c_graph.dispose()
            self.c_graph = None
        self.variable_gradients.dispose()
        logger.debug("%s disposed", type(self).__name__)

    def __enter__(self) -> "Optimizer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()
