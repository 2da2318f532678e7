from ._accumulator_store import AccumulatorStore
from ._optimizer import BatchPhase, Optimizer
from ._rmsprop import RMSProp
from ._rmsprop_update import (
    GraphNodeSlot,
    NamedVariableSlot,
    TensorMath,
    rmsprop_update,
)

__all__ = [
    AccumulatorStore.__name__,
    BatchPhase.__name__,
    Optimizer.__name__,
    RMSProp.__name__,
    GraphNodeSlot.__name__,
    NamedVariableSlot.__name__,
    TensorMath.__name__,
    "rmsprop_update",
]
