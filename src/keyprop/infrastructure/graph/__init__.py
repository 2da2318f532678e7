from ._graph import Node, SymbolicTensor, VariableNode
from ._math import NDArrayMath
from ._session import BatchContext, SessionRuntime
from ._tensor_array_map import SummedTensorArrayMap, TensorArrayMap

__all__ = [
    "Node",
    "SymbolicTensor",
    "VariableNode",
    "NDArrayMath",
    "BatchContext",
    "SessionRuntime",
    "SummedTensorArrayMap",
    "TensorArrayMap",
]
