import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar
from uuid import UUID

from chatapp.core.config import settings
from chatapp.core.exceptions import PersistentDataStoreException
from chatapp.database.datastore import Datastore, Entity
from chatapp.schemas.conversation import Conversation
from chatapp.schemas.common import WriteStatus
from chatapp.schemas.message import Message
from chatapp.schemas.user import User
from chatapp.services import entity_codec

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")


class PersistentDataStore:
    """
    Loads users, conversations and messages from the datastore and writes
    them back.

    Each successful load replaces the identifier -> entity lookup table of
    its kind. Updates and deletes only act on entities found in these tables,
    so a record must have been loaded (or written through this instance)
    before it can be updated or deleted.
    """

    def __init__(
        self,
        datastore: Datastore,
        user_kind: str = None,
        conversation_kind: str = None,
        message_kind: str = None,
        legacy_user_defaults: Optional[Mapping[str, Any]] = None,
    ):
        self.datastore = datastore
        self.user_kind = user_kind or settings.user_kind
        self.conversation_kind = conversation_kind or settings.conversation_kind
        self.message_kind = message_kind or settings.message_kind
        self.legacy_user_defaults = dict(
            settings.legacy_user_defaults if legacy_user_defaults is None else legacy_user_defaults
        )

        self.user_entities_by_id: Dict[UUID, Entity] = {}
        self.conversation_entities_by_id: Dict[UUID, Entity] = {}
        self.message_entities_by_id: Dict[UUID, Entity] = {}

    async def _load_kind(
        self, kind: str, decode: Callable[[Entity], RecordT]
    ) -> Tuple[List[RecordT], Dict[UUID, Entity]]:
        """
        Query one kind and decode every entity.

        Raises:
            PersistentDataStoreException: On the first store or decode error;
                nothing decoded so far is returned
        """
        records: List[RecordT] = []
        entities_by_id: Dict[UUID, Entity] = {}
        try:
            for entity in await self.datastore.query(kind):
                record = decode(entity)
                records.append(record)
                entities_by_id[record.id] = entity
        except Exception as e:
            # Network errors, datastore errors and entity definition mismatches
            # all abort the load.
            logger.error(f"Loading kind {kind} failed: {e}")
            raise PersistentDataStoreException(e) from e

        logger.info(f"Loaded {len(records)} entities of kind {kind}")
        return records, entities_by_id

    def _decode_user(self, entity: Entity) -> User:
        return entity_codec.user_from_entity(entity, self.legacy_user_defaults)

    # Loads

    async def load_users(self) -> List[User]:
        """
        Load every user.

        Raises:
            PersistentDataStoreException: If any entity fails to load
        """
        users, entities_by_id = await self._load_kind(self.user_kind, self._decode_user)
        self.user_entities_by_id = entities_by_id
        return users

    async def load_admins(self) -> List[User]:
        """
        Load every user whose admin flag is set.

        Re-queries the user kind and checks the flag per entity. The lookup
        table is left untouched.

        Raises:
            PersistentDataStoreException: If any admin entity fails to load
        """
        admins: List[User] = []
        try:
            for entity in await self.datastore.query(self.user_kind):
                if not entity_codec.get_required(entity, "isAdmin", bool):
                    continue
                admins.append(self._decode_user(entity))
        except Exception as e:
            logger.error(f"Loading admins failed: {e}")
            raise PersistentDataStoreException(e) from e

        logger.info(f"Loaded {len(admins)} admins")
        return admins

    async def load_conversations(self) -> List[Conversation]:
        """
        Load every conversation.

        Raises:
            PersistentDataStoreException: If any entity fails to load
        """
        conversations, entities_by_id = await self._load_kind(
            self.conversation_kind, entity_codec.conversation_from_entity
        )
        self.conversation_entities_by_id = entities_by_id
        return conversations

    async def load_messages(self) -> List[Message]:
        """
        Load every message.

        Raises:
            PersistentDataStoreException: If any entity fails to load
        """
        messages, entities_by_id = await self._load_kind(
            self.message_kind, entity_codec.message_from_entity
        )
        self.message_entities_by_id = entities_by_id
        return messages

    # Shared write helpers

    async def _put(self, entity: Entity) -> None:
        try:
            await self.datastore.put(entity)
        except Exception as e:
            logger.error(f"Writing {entity!r} failed: {e}")
            raise PersistentDataStoreException(e) from e

    async def _write(self, record_id: UUID, entity: Entity, entities_by_id: Dict[UUID, Entity]) -> WriteStatus:
        # Entities written before keys followed record ids keep their old key.
        existing = entities_by_id.get(record_id)
        if existing is not None:
            entity.key = existing.key
        await self._put(entity)
        entities_by_id[record_id] = entity
        logger.debug(f"Wrote {entity.kind} {record_id}")
        return WriteStatus.WRITTEN

    async def _delete(self, record_id: UUID, entities_by_id: Dict[UUID, Entity]) -> WriteStatus:
        entity = entities_by_id.get(record_id)
        if entity is None:
            logger.warning(f"Delete skipped, {record_id} was never loaded")
            return WriteStatus.NOT_FOUND

        try:
            await self.datastore.delete(entity.key)
        except Exception as e:
            logger.error(f"Deleting {entity!r} failed: {e}")
            raise PersistentDataStoreException(e) from e

        del entities_by_id[record_id]
        logger.debug(f"Deleted {entity.kind} {record_id}")
        return WriteStatus.DELETED

    # Users

    async def write_user(self, user: User) -> WriteStatus:
        """
        Write every field of a user, replacing any stored entity with the
        same id.
        """
        entity = entity_codec.user_to_entity(user, self.user_kind)
        return await self._write(user.id, entity, self.user_entities_by_id)

    async def update_user(self, user: User) -> WriteStatus:
        """
        Push the mutable fields of a loaded user back to the datastore.

        Returns:
            WriteStatus.UPDATED, or WriteStatus.NOT_FOUND when the user was
            never loaded (nothing is written)
        """
        loaded = self.user_entities_by_id.get(user.id)
        if loaded is None:
            logger.warning(f"Update skipped, user {user.id} was never loaded")
            return WriteStatus.NOT_FOUND

        # The cached entity is only replaced once the put succeeded.
        entity = Entity(loaded.kind, key=loaded.key, properties=loaded.properties)
        entity_codec.apply_user_update(entity, user)
        await self._put(entity)
        self.user_entities_by_id[user.id] = entity
        logger.debug(f"Updated user {user.id}")
        return WriteStatus.UPDATED

    async def delete_user(self, user: User) -> WriteStatus:
        return await self._delete(user.id, self.user_entities_by_id)

    # Conversations

    async def write_conversation(self, conversation: Conversation) -> WriteStatus:
        entity = entity_codec.conversation_to_entity(conversation, self.conversation_kind)
        return await self._write(conversation.id, entity, self.conversation_entities_by_id)

    async def delete_conversation(self, conversation: Conversation) -> WriteStatus:
        return await self._delete(conversation.id, self.conversation_entities_by_id)

    # Messages

    async def write_message(self, message: Message) -> WriteStatus:
        entity = entity_codec.message_to_entity(message, self.message_kind)
        return await self._write(message.id, entity, self.message_entities_by_id)

    async def delete_message(self, message: Message) -> WriteStatus:
        return await self._delete(message.id, self.message_entities_by_id)
