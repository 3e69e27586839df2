# chatapp/database/datastore.py
import base64
import logging
import uuid
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from chatapp.core.exceptions import DatastoreUnavailableException
from chatapp.database.session import session_scope
from chatapp.models.entity import EntityRow

logger = logging.getLogger(__name__)

# Marker key for blobs inside the JSON property bag.
BLOB_TAG = "__blob__"

_SCALAR_TYPES = (str, int, float, bool, type(None))


class Blob:
    """Binary property value."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes = b""):
        self._data = bytes(data)

    @property
    def bytes(self) -> bytes:
        return self._data

    def __eq__(self, other):
        return isinstance(other, Blob) and other._data == self._data

    def __hash__(self):
        return hash(self._data)

    def __repr__(self):
        return f"<Blob({len(self._data)} bytes)>"


class Entity:
    """
    A property bag belonging to one kind.

    ``key`` is None until the entity has been put for the first time.
    """

    def __init__(self, kind: str, key: Optional[UUID] = None, properties: Dict[str, Any] = None):
        self.kind = kind
        self.key = key
        self._properties: Dict[str, Any] = dict(properties or {})

    def get_property(self, name: str) -> Any:
        return self._properties.get(name)

    def set_property(self, name: str, value: Any) -> None:
        _check_property_value(name, value)
        self._properties[name] = value

    def has_property(self, name: str) -> bool:
        return name in self._properties

    def remove_property(self, name: str) -> None:
        self._properties.pop(name, None)

    @property
    def properties(self) -> Dict[str, Any]:
        return dict(self._properties)

    def __repr__(self):
        return f"<Entity(kind='{self.kind}', key={self.key})>"


def _check_property_value(name: str, value: Any) -> None:
    if isinstance(value, list):
        for item in value:
            if not isinstance(item, _SCALAR_TYPES + (Blob,)):
                raise TypeError(f"Unsupported list item type {type(item).__name__} for property '{name}'")
        return
    if not isinstance(value, _SCALAR_TYPES + (Blob,)):
        raise TypeError(f"Unsupported property type {type(value).__name__} for property '{name}'")


def _encode_value(value: Any) -> Any:
    if isinstance(value, Blob):
        return {BLOB_TAG: base64.b64encode(value.bytes).decode("ascii")}
    if isinstance(value, list):
        return [_encode_value(item) for item in value]
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict) and BLOB_TAG in value:
        return Blob(base64.b64decode(value[BLOB_TAG]))
    if isinstance(value, list):
        return [_decode_value(item) for item in value]
    return value


def encode_properties(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {name: _encode_value(value) for name, value in properties.items()}


def decode_properties(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {name: _decode_value(value) for name, value in properties.items()}


class Datastore:
    """
    Kind-partitioned entity store backed by the ``entities`` table.

    Supports exactly three operations: fetch every entity of a kind, put an
    entity (insert or replace by key) and delete by key. Every call runs in
    its own session.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def query(self, kind: str) -> List[Entity]:
        """
        Fetch every entity of a kind.

        Raises:
            DatastoreUnavailableException: If the database call fails
        """
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(select(EntityRow).filter(EntityRow.kind == kind))
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise DatastoreUnavailableException(detail=f"Query for kind '{kind}' failed: {e}") from e

        return [
            Entity(kind=row.kind, key=row.id, properties=decode_properties(row.properties))
            for row in rows
        ]

    async def put(self, entity: Entity) -> UUID:
        """
        Insert or replace an entity, assigning a key on first put.

        Returns:
            The entity's storage key

        Raises:
            DatastoreUnavailableException: If the database call fails
        """
        if entity.key is None:
            entity.key = uuid.uuid4()

        row = EntityRow(id=entity.key, kind=entity.kind, properties=encode_properties(entity.properties))
        try:
            async with session_scope(self.session_factory) as session:
                await session.merge(row)
        except SQLAlchemyError as e:
            raise DatastoreUnavailableException(detail=f"Put of {entity!r} failed: {e}") from e

        logger.debug(f"Put entity {entity.key} of kind {entity.kind}")
        return entity.key

    async def delete(self, key: UUID) -> None:
        """
        Delete an entity by key. Deleting a missing key is not an error.

        Raises:
            DatastoreUnavailableException: If the database call fails
        """
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(delete(EntityRow).where(EntityRow.id == key))
        except SQLAlchemyError as e:
            raise DatastoreUnavailableException(detail=f"Delete of entity {key} failed: {e}") from e

        logger.debug(f"Deleted entity {key}")
