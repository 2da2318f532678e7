"""
Buffer-lifetime, configuration, and protocol exceptions for keyprop.

This module defines the error taxonomy shared by the tensor engine, the
variable registry, and the optimizers. The errors subclass the closest
built-in exception so callers may catch them either precisely or through the
usual `ValueError` / `KeyError` / `RuntimeError` families.

Nothing in keyprop recovers from these errors locally; they propagate to the
caller of the failing operation.
"""


class ShapeMismatchError(ValueError):
    """
    Raised when two tensors with incompatible shapes are combined.

    Only identical shapes and scalar (shape ``()``) operands are compatible;
    general broadcasting is not supported.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted (e.g., "add", "assign").
    shape_a : tuple[int, ...]
        Shape of the left-hand operand (or the destination).
    shape_b : tuple[int, ...]
        Shape of the right-hand operand (or the source).
    """

    def __init__(self, op: str, shape_a: tuple, shape_b: tuple) -> None:
        super().__init__(
            f"{op}: shape mismatch {tuple(shape_a)} vs {tuple(shape_b)}."
        )
        self.op = op
        self.shape_a = tuple(shape_a)
        self.shape_b = tuple(shape_b)


class UnknownParameterError(KeyError):
    """
    Raised when a gradient names a parameter that is not registered.
    """

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No variable named '{self.name}' is registered."


class DoubleReleaseError(RuntimeError):
    """
    Raised when a tensor buffer is released while it is not live.

    This is a programming error: every buffer has exactly one owner and is
    released exactly once.
    """

    def __init__(self, tensor_id: int) -> None:
        super().__init__(f"Tensor #{tensor_id} has already been released.")
        self.tensor_id = tensor_id


class TensorDisposedError(RuntimeError):
    """
    Raised when the storage of a released tensor is read.
    """

    def __init__(self, tensor_id: int, op: str) -> None:
        super().__init__(f"{op}: tensor #{tensor_id} has been disposed.")
        self.tensor_id = tensor_id
        self.op = op


class InvalidConfigError(ValueError):
    """
    Raised when an optimizer hyper-parameter is outside its valid range.
    """


class MissingRegistryError(InvalidConfigError):
    """
    Raised when eager updates are requested from an optimizer constructed
    without a `VariableRegistry`.
    """

    def __init__(self, op: str) -> None:
        super().__init__(f"{op} requires a VariableRegistry.")
        self.op = op


class EngineMismatchError(ValueError):
    """
    Raised when a tensor handed to an optimizer is tracked by a different
    `Engine` than the optimizer's.

    Temporaries derived from such a tensor register with its engine, out of
    reach of the optimizer's allocation scopes.

    Attributes
    ----------
    op : str
        The operation that received the tensor.
    name : str
        The parameter (or node) the tensor belongs to.
    """

    def __init__(self, op: str, name: str) -> None:
        super().__init__(
            f"{op}: tensor for '{name}' lives on a different engine than the "
            f"optimizer."
        )
        self.op = op
        self.name = name


class OptimizerDisposedError(RuntimeError):
    """
    Raised when an optimizer is used after `dispose()`.
    """

    def __init__(self, op: str) -> None:
        super().__init__(f"{op} called on a disposed optimizer.")
        self.op = op


class BatchProtocolError(RuntimeError):
    """
    Raised when graph-mode batch phases are invoked out of order.

    The expected order per batch is ``before_batch`` → any number of
    ``after_example`` → ``after_batch``.
    """
