from ._variables import Variable, VariableRegistry
from .optimizers import RMSProp

__all__ = [Variable.__name__, VariableRegistry.__name__, RMSProp.__name__]
