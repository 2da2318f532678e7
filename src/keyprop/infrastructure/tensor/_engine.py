"""
Allocation tracking and scoped reclamation of tensor buffers.

Buffers in keyprop are not reclaimed by the garbage collector. Every tensor
registers itself with an `Engine` on construction and stays *live* until it
is released, either explicitly (`Tensor.dispose`) or by the allocation scope
that was open when it was created.

Scopes implement the "ephemeral unless retained" rule:

- every tensor allocated inside `Engine.scope()` / `Engine.tidy()` is
  released when the scope exits, also when the scope exits with an error;
- tensors passed to `Engine.keep()` are never released by any scope; their
  owner must dispose them;
- values returned from `Engine.tidy()` survive the scope and are handed to
  the enclosing scope (if any).

Notes
-----
- The engine is single-threaded. Scopes must be entered and exited in
  strict LIFO order on one thread.
- `num_tensors` counts live buffers and is the basis of the leak checks in
  the test-suite.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, TypeVar
import logging

from ...domain._errors import DoubleReleaseError

if TYPE_CHECKING:
    from ._tensor import Tensor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Engine:
    """
    Registry of live tensor buffers and the stack of open scopes.

    Attributes
    ----------
    num_tensors : int
        Number of tensors registered and not yet released.
    num_allocated : int
        Total number of tensors ever registered with this engine.
    """

    def __init__(self) -> None:
        self._live: Dict[int, "Tensor"] = {}
        self._scopes: List[List["Tensor"]] = []
        self._next_id: int = 0

    @property
    def num_tensors(self) -> int:
        return len(self._live)

    @property
    def num_allocated(self) -> int:
        return self._next_id

    @property
    def scope_depth(self) -> int:
        return len(self._scopes)

    def next_id(self) -> int:
        tid = self._next_id
        self._next_id += 1
        return tid

    def register(self, tensor: "Tensor") -> None:
        """
        Track a freshly allocated tensor.

        The tensor becomes live and, if a scope is open, is tracked by the
        innermost one.
        """
        self._live[tensor.id] = tensor
        if self._scopes:
            self._scopes[-1].append(tensor)

    def is_live(self, tensor: "Tensor") -> bool:
        return tensor.id in self._live

    def release(self, tensor: "Tensor") -> None:
        """
        Stop tracking `tensor` as live.

        Raises
        ------
        DoubleReleaseError
            If `tensor` is not live (already released or never registered).
        """
        if tensor.id not in self._live:
            raise DoubleReleaseError(tensor.id)
        del self._live[tensor.id]

    def keep(self, tensor: "Tensor") -> "Tensor":
        """
        Exclude `tensor` from scope reclamation and return it.

        Keeping is permanent; the owner of a kept tensor must dispose it.
        """
        tensor._kept = True
        return tensor

    @contextmanager
    def scope(self) -> Iterator[None]:
        """
        Open an allocation scope.

        Every non-kept tensor allocated inside the block is released when the
        block exits, whether normally or through an exception.
        """
        tracked: List["Tensor"] = []
        self._scopes.append(tracked)
        try:
            yield
        finally:
            self._scopes.pop()
            self._reclaim(tracked, survivors=())

    def tidy(self, fn: Callable[[], T]) -> T:
        """
        Run `fn` inside an allocation scope and return its result.

        Tensors reachable from the result (a tensor, or a list, tuple, or
        dict of tensors) survive the scope and are moved to the enclosing
        scope, if one is open.
        """
        tracked: List["Tensor"] = []
        self._scopes.append(tracked)
        try:
            result = fn()
        except BaseException:
            self._scopes.pop()
            self._reclaim(tracked, survivors=())
            raise

        self._scopes.pop()
        survivors = _collect_tensors(result)
        self._reclaim(tracked, survivors=survivors)
        if self._scopes:
            self._scopes[-1].extend(t for t in survivors if not t.is_kept)
        return result

    def _reclaim(self, tracked: List["Tensor"], survivors: Any) -> None:
        keep_ids = {id(t) for t in survivors}
        released = 0
        for t in tracked:
            if t.is_kept or t.is_disposed or id(t) in keep_ids:
                continue
            t.dispose()
            released += 1
        if released:
            logger.debug("Scope exit released %d temporaries", released)


def _collect_tensors(value: Any) -> List["Tensor"]:
    from ._tensor import Tensor

    if isinstance(value, Tensor):
        return [value]
    if isinstance(value, (list, tuple)):
        out: List["Tensor"] = []
        for v in value:
            out.extend(_collect_tensors(v))
        return out
    if isinstance(value, dict):
        out = []
        for v in value.values():
            out.extend(_collect_tensors(v))
        return out
    return []


_ENGINE = Engine()


def get_engine() -> Engine:
    """
    Return the engine new tensors register with by default.
    """
    return _ENGINE


@contextmanager
def use_engine(engine: Engine) -> Iterator[Engine]:
    """
    Temporarily make `engine` the default engine.

    Useful to isolate allocation tracking, e.g. in tests.
    """
    global _ENGINE
    previous = _ENGINE
    _ENGINE = engine
    try:
        yield engine
    finally:
        _ENGINE = previous
