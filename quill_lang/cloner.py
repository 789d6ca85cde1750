import copy
import logging
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, Optional

from .models import Closure

logger = logging.getLogger(__name__)

PASS_THROUGH = (
    type(None),
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    tuple,
    frozenset,
    range,
    Decimal,
    Fraction,
    BaseException,
    Closure,
    type,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.ModuleType,
)


class Cloner(ABC):
    """Copies live values into a speculative snapshot."""

    @abstractmethod
    def clone(self, obj: Any) -> Any: ...

    @abstractmethod
    def mark_cache(self) -> None: ...

    @abstractmethod
    def purge_cache(self) -> None: ...


@dataclass
class _Entry:
    source: Any
    copy: Any
    generation: int
    fingerprint: Optional[int]


def _fingerprint(obj: Any) -> Optional[int]:
    try:
        return hash(obj)
    except TypeError:
        return None


class ObjectCloner(Cloner):
    """Shallow-copying cloner with a generation-counted cache.

    ``mark_cache`` opens a generation, every ``clone`` touches the entry
    it returns, and ``purge_cache`` evicts entries left untouched.
    """

    def __init__(self):
        self._cache: Dict[int, _Entry] = {}
        self.generation = 0

    def __len__(self) -> int:
        return len(self._cache)

    def clone(self, obj: Any) -> Any:
        if isinstance(obj, PASS_THROUGH):
            return obj
        key = id(obj)
        entry = self._cache.get(key)
        if entry is not None and entry.source is obj and self._unchanged(entry, obj):
            entry.generation = self.generation
            return entry.copy
        try:
            out = copy.copy(obj)
        except Exception as e:
            logger.debug("Cannot copy %s, sharing it: %s", type(obj).__name__, e)
            out = obj
        self._cache[key] = _Entry(obj, out, self.generation, _fingerprint(obj))
        return out

    def _unchanged(self, entry: _Entry, obj: Any) -> bool:
        if entry.copy is obj:
            return True
        if entry.fingerprint is not None and entry.fingerprint != _fingerprint(obj):
            return False
        try:
            return bool(obj == entry.copy)
        except Exception as e:
            logger.debug("Cannot compare %s with its clone: %s", type(obj).__name__, e)
            return False

    def mark_cache(self) -> None:
        self.generation += 1

    def purge_cache(self) -> None:
        stale = [k for k, e in self._cache.items() if e.generation != self.generation]
        for key in stale:
            del self._cache[key]
