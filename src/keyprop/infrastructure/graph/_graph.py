"""
Minimal computation-graph node types.

Only the parts of a graph that a graph-mode optimizer touches are modelled
here: every node exposes a symbolic `output` (used as the key of the
activation and gradient maps), and trainable `VariableNode`s additionally
carry their materialized `data` tensor.
"""

from __future__ import annotations

from typing import Optional, Sequence
import itertools

from ..tensor._tensor import Tensor

_ids = itertools.count()


class SymbolicTensor:
    """
    Shape-only placeholder for a node output.

    Instances hash by identity, so they can key tensor maps.
    """

    __slots__ = ("id", "shape", "name")

    def __init__(self, shape: Sequence[int], name: Optional[str] = None) -> None:
        self.id = next(_ids)
        self.shape = tuple(shape)
        self.name = name

    def __repr__(self) -> str:
        return f"SymbolicTensor(id={self.id}, name={self.name!r}, shape={self.shape})"


class Node:
    """
    Graph node with a single symbolic output.
    """

    def __init__(self, name: str, output_shape: Sequence[int]) -> None:
        self.name = name
        self.output = SymbolicTensor(output_shape, name=name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class VariableNode(Node):
    """
    Trainable graph node.

    Parameters
    ----------
    name : str
        Node name.
    data : Tensor
        Materialized value. The graph owns it; graph-mode optimizers replace
        it after each batch.
    """

    def __init__(self, name: str, data: Tensor) -> None:
        super().__init__(name, data.shape)
        self.data = data
