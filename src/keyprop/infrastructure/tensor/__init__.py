from ._engine import Engine, get_engine, use_engine
from ._ops import scalar, tensor, zeros, zeros_like
from ._tensor import Tensor

__all__ = [
    Engine.__name__,
    Tensor.__name__,
    "get_engine",
    "use_engine",
    "scalar",
    "tensor",
    "zeros",
    "zeros_like",
]
