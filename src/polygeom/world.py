"""
Linkage between geometry handles and an external world/scene collaborator.

A referenced ``Geometry3D`` never holds the world's data directly; it holds a
``WorldItemRef`` (world id, item id) and resolves it through the registry on
each access. The world is responsible for pushing item transforms into the
handle with ``set_current_transform``.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Protocol, runtime_checkable

from polygeom.core.exceptions import InvalidArgumentError
from polygeom.core.logging import get_logger

_logger = get_logger(__name__)


@runtime_checkable
class WorldGeometryStore(Protocol):
    """Interface a world/scene layer exposes to geometry handles."""

    world_id: int

    def item_geometry(self, item_id: int) -> Optional[object]:
        """Return the representation stored for ``item_id`` (None if empty)."""
        ...

    def set_item_geometry(self, item_id: int, data: Optional[object]) -> None:
        """Replace the representation stored for ``item_id``."""
        ...


@dataclass(frozen=True)
class WorldItemRef:
    """Identity pair of a world item's geometry."""

    world_id: int
    item_id: int

    def resolve(self) -> WorldGeometryStore:
        return get_world(self.world_id)


_worlds: Dict[int, WorldGeometryStore] = {}


def register_world(store: WorldGeometryStore) -> None:
    """
    Make ``store`` resolvable by its ``world_id``.

    Raises:
        InvalidArgumentError: If another store already uses the id
    """
    existing = _worlds.get(store.world_id)
    if existing is not None and existing is not store:
        raise InvalidArgumentError(
            f"World id already registered: {store.world_id}",
            details={"world_id": store.world_id},
        )
    _worlds[store.world_id] = store
    _logger.debug("world_registered", world_id=store.world_id)


def unregister_world(world_id: int) -> None:
    _worlds.pop(world_id, None)
    _logger.debug("world_unregistered", world_id=world_id)


def get_world(world_id: int) -> WorldGeometryStore:
    """
    Look up a registered world.

    Raises:
        InvalidArgumentError: If no world is registered under ``world_id``
    """
    try:
        return _worlds[world_id]
    except KeyError:
        raise InvalidArgumentError(
            f"No world registered with id {world_id}",
            details={"registered": sorted(_worlds)},
        ) from None
