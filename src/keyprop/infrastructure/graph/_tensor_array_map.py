"""
Maps from symbolic node outputs to concrete tensors.

`TensorArrayMap` holds one tensor (or a null placeholder) per
`SymbolicTensor`. The map does not retain or release on `set`; callers
decide ownership, and `dispose()` releases every non-null value still held.

`SummedTensorArrayMap` accumulates: `add` sums a new tensor into the value
already stored under the key.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from ..tensor._tensor import Tensor
from ._graph import SymbolicTensor


class TensorArrayMap:
    def __init__(self) -> None:
        self._dict: Dict[SymbolicTensor, Optional[Tensor]] = {}

    def set(self, key: SymbolicTensor, value: Optional[Tensor]) -> None:
        self._dict[key] = value

    def get(self, key: SymbolicTensor, skip_checks: bool = False) -> Tensor:
        """
        Return the tensor stored under `key`.

        Raises
        ------
        KeyError
            If `key` is absent or nulled, unless `skip_checks` is True (then
            None may be returned).
        """
        if not skip_checks and key not in self._dict:
            raise KeyError(f"{key!r} not in tensor map.")
        value = self._dict.get(key)
        if not skip_checks and value is None:
            raise KeyError(f"{key!r} has a null value in tensor map.")
        return value  # type: ignore[return-value]

    def delete(self, key: SymbolicTensor) -> None:
        del self._dict[key]

    def nullify(self, key: SymbolicTensor) -> None:
        self._dict[key] = None

    def dispose_array(self, key: SymbolicTensor) -> None:
        """
        Release the value under `key` (if any) and drop the entry.
        """
        value = self._dict.pop(key, None)
        if value is not None and not value.is_disposed:
            value.dispose()

    def size(self) -> int:
        return len(self._dict)

    def keys(self) -> List[SymbolicTensor]:
        return list(self._dict)

    def has_null_array(self) -> bool:
        return any(v is None for v in self._dict.values())

    def dispose(self) -> None:
        """
        Release every live value and empty the map.
        """
        for value in self._dict.values():
            if value is not None and not value.is_disposed:
                value.dispose()
        self._dict.clear()


class SummedTensorArrayMap(TensorArrayMap):
    def add(self, key: SymbolicTensor, value: Tensor) -> None:
        """
        Store `value` under `key`, or add it into the existing value.

        The first tensor added under a key is adopted by the map. Later
        addends stay owned by the caller; the sum is kept and the previous
        sum is released.
        """
        current = self._dict.get(key)
        if current is None:
            self._dict[key] = value
            return
        self._dict[key] = (current + value).keep()
        current.dispose()
