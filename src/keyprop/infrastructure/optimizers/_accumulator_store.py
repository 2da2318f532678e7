"""
Owning container for per-parameter optimizer state tensors.

An `AccumulatorStore` maps parameter names to kept tensors (for RMSProp,
the decayed squared-gradient average). The store is the sole owner of every
tensor it holds:

- `get_or_create` lazily installs a kept zero tensor shaped like the
  parameter;
- `replace` keeps the new tensor and releases the previous one in the same
  call, so at most one live tensor exists per name;
- `dispose` releases everything and empties the store.
"""

from __future__ import annotations

from typing import Dict, List, Optional
import logging

from ..tensor._ops import zeros_like
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


class AccumulatorStore:
    def __init__(self) -> None:
        self._tensors: Dict[str, Tensor] = {}

    def get(self, name: str) -> Optional[Tensor]:
        return self._tensors.get(name)

    def get_or_create(self, name: str, like: Tensor) -> Tensor:
        """
        Return the accumulator for `name`, creating a kept zero tensor with
        the shape of `like` on first use.
        """
        acc = self._tensors.get(name)
        if acc is None:
            acc = zeros_like(like).keep()
            self._tensors[name] = acc
            logger.debug("Created accumulator for '%s' with shape %s", name, like.shape)
        return acc

    def replace(self, name: str, new: Tensor) -> None:
        """
        Install `new` (kept) as the accumulator for `name` and release the
        previous accumulator, if any.
        """
        new.keep()
        old = self._tensors.get(name)
        self._tensors[name] = new
        if old is not None and old is not new:
            old.dispose()

    def names(self) -> List[str]:
        return list(self._tensors)

    def __contains__(self, name: object) -> bool:
        return name in self._tensors

    def __len__(self) -> int:
        return len(self._tensors)

    def dispose(self) -> None:
        for tensor in self._tensors.values():
            tensor.dispose()
        self._tensors.clear()
