"""
Capability matrix of proximity algorithms.

Algorithms are registered for an (operation, kind A, kind B) triple at import
time. Pair operations are registered once per unordered pair; looking up the
reverse order returns the same function flagged as swapped so callers can
exchange the roles of the operands and of the result fields.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, Optional, Tuple

from polygeom.core.exceptions import InvalidArgumentError, UnsupportedOperationError
from polygeom.geometry.types import GeometryType


class QueryOp(Enum):
    """Operations dispatched through the capability matrix."""

    WITHIN = "within"
    DISTANCE = "distance"
    CONTACTS = "contacts"
    DISTANCE_POINT = "distance_point"
    RAY_CAST = "ray_cast"
    SUPPORT = "support"

    @property
    def is_pair(self) -> bool:
        return self in (QueryOp.WITHIN, QueryOp.DISTANCE, QueryOp.CONTACTS)


Key = Tuple[QueryOp, GeometryType, Optional[GeometryType]]


@dataclass
class DispatchTable:
    """
    Registry of (operation, kind A, kind B) -> algorithm.

    Example:
        >>> table = DispatchTable()
        >>> @table.register(QueryOp.DISTANCE, GeometryType.PRIMITIVE, GeometryType.PRIMITIVE)
        ... def prim_prim(a, b, settings): ...
        >>> fn, swapped = table.lookup(QueryOp.DISTANCE, GeometryType.PRIMITIVE, GeometryType.PRIMITIVE)
    """

    _entries: Dict[Key, Callable] = field(default_factory=dict)

    def register(
        self,
        op: QueryOp,
        kind_a: GeometryType,
        kind_b: Optional[GeometryType] = None,
    ) -> Callable[[Callable], Callable]:
        """Decorator registering an algorithm for a triple."""
        if op.is_pair == (kind_b is None):
            raise InvalidArgumentError(
                f"Operation {op.value} takes {'two kinds' if op.is_pair else 'one kind'}"
            )
        if GeometryType.GROUP in (kind_a, kind_b):
            raise InvalidArgumentError("Groups are resolved by recursion, not registration")
        key = (op, kind_a, kind_b)

        def decorator(fn: Callable) -> Callable:
            if key in self._entries or (kind_b is not None and (op, kind_b, kind_a) in self._entries):
                raise InvalidArgumentError(
                    "Algorithm already registered",
                    details={"operation": op.value, "kinds": (kind_a.value, kind_b and kind_b.value)},
                )
            self._entries[key] = fn
            return fn

        return decorator

    def lookup(
        self,
        op: QueryOp,
        kind_a: GeometryType,
        kind_b: Optional[GeometryType] = None,
    ) -> Tuple[Callable, bool]:
        """
        Find the algorithm for a triple.

        Returns:
            (algorithm, swapped) where ``swapped`` means the algorithm was
            registered for (kind_b, kind_a)

        Raises:
            UnsupportedOperationError: If no algorithm is registered
        """
        fn = self._entries.get((op, kind_a, kind_b))
        if fn is not None:
            return fn, False
        if kind_b is not None:
            fn = self._entries.get((op, kind_b, kind_a))
            if fn is not None:
                return fn, True
        raise UnsupportedOperationError(
            op.value, kind_a.value, None if kind_b is None else kind_b.value
        )

    def supports(
        self,
        op: QueryOp,
        kind_a: GeometryType,
        kind_b: Optional[GeometryType] = None,
    ) -> bool:
        try:
            self.lookup(op, kind_a, kind_b)
        except UnsupportedOperationError:
            return False
        return True

    def __iter__(self) -> Iterator[Key]:
        return iter(sorted(self._entries, key=_key_order))


def _key_order(key: Key) -> tuple:
    op, a, b = key
    return (op.value, a.order, -1 if b is None else b.order)


#: The process-wide table, populated by ``single`` and ``pairs`` on import.
QUERY_TABLE = DispatchTable()
