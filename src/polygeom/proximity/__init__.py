"""
Proximity queries: collision, distance, contacts, ray casts and support points.
"""

from polygeom.proximity.dispatch import QUERY_TABLE, DispatchTable, QueryOp
from polygeom.proximity.engine import (
    contacts,
    distance,
    distance_point,
    ray_cast,
    support,
    within,
)
from polygeom.proximity.operand import Operand
from polygeom.proximity.results import ContactQueryResult, DistanceQueryResult

__all__ = [
    "QUERY_TABLE",
    "DispatchTable",
    "QueryOp",
    "Operand",
    "ContactQueryResult",
    "DistanceQueryResult",
    "within",
    "distance",
    "distance_point",
    "contacts",
    "ray_cast",
    "support",
]
