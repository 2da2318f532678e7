"""
Per-run handles passed from a session runtime to graph-mode optimizers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ._graph import Node, VariableNode
from ._math import NDArrayMath
from ._tensor_array_map import SummedTensorArrayMap, TensorArrayMap


@dataclass
class SessionRuntime:
    """
    Evaluation set of one session run.

    Attributes
    ----------
    nodes : list[Node]
        Nodes evaluated by the run, in topological order.
    """

    nodes: List[Node] = field(default_factory=list)

    def variable_nodes(self) -> List[VariableNode]:
        return [n for n in self.nodes if isinstance(n, VariableNode)]


@dataclass
class BatchContext:
    """
    Bundle handed to each graph-mode optimizer phase.

    Attributes
    ----------
    math : NDArrayMath
        Arithmetic collaborator.
    batch_size : int
        Number of examples in the batch.
    runtime : SessionRuntime
        Evaluation set of the run.
    activation_map : TensorArrayMap
        Node output → current activation (for variables: their value).
    gradient_map : SummedTensorArrayMap
        Node output → gradient of the current example.
    """

    math: NDArrayMath
    batch_size: int
    runtime: SessionRuntime
    activation_map: TensorArrayMap
    gradient_map: SummedTensorArrayMap

