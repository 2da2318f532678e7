from ._errors import (
    BatchProtocolError,
    DoubleReleaseError,
    EngineMismatchError,
    InvalidConfigError,
    MissingRegistryError,
    OptimizerDisposedError,
    ShapeMismatchError,
    TensorDisposedError,
    UnknownParameterError,
)
from ._optimizers import IGraphOptimizer, IOptimizer, IUpdateMath, IUpdateSlot
from ._tensor import ITensor

__all__ = [
    "BatchProtocolError",
    "DoubleReleaseError",
    "EngineMismatchError",
    "InvalidConfigError",
    "MissingRegistryError",
    "OptimizerDisposedError",
    "ShapeMismatchError",
    "TensorDisposedError",
    "UnknownParameterError",
    "IGraphOptimizer",
    "IOptimizer",
    "IUpdateMath",
    "IUpdateSlot",
    "ITensor",
]
