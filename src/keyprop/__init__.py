"""
keyprop: an RMSProp optimizer core with explicit tensor buffer lifetimes.
"""

from .domain._errors import (
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
from .infrastructure._variables import Variable, VariableRegistry
from .infrastructure.optimizers import RMSProp
from .infrastructure.tensor import (
    Engine,
    Tensor,
    get_engine,
    scalar,
    tensor,
    use_engine,
    zeros,
    zeros_like,
)

__version__ = "0.1.0"

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
    "Variable",
    "VariableRegistry",
    "RMSProp",
    "Engine",
    "Tensor",
    "get_engine",
    "scalar",
    "tensor",
    "use_engine",
    "zeros",
    "zeros_like",
]
