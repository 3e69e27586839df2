"""
Mapping between records and datastore entities.

Property names and value types follow the stored schema of the
``chat-users``, ``chat-conversations`` and ``chat-messages`` kinds. UUIDs and
instants are stored as strings, the profile picture as a ``Blob``. The
user's conversation visibility mapping cannot be stored as a nested value,
so it is split into two parallel lists, ``conversationIds`` and
``hiddenConversations``, kept in the mapping's iteration order.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Tuple
from uuid import UUID

from chatapp.core.exceptions import EntityDecodeException
from chatapp.database.datastore import Blob, Entity
from chatapp.schemas.conversation import Conversation
from chatapp.schemas.message import Message
from chatapp.schemas.user import User

# Primitive conversions

def format_instant(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_instant(value: str, property_name: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise EntityDecodeException(f"Malformed timestamp {value!r}", property_name=property_name) from e
    if parsed.tzinfo is None:
        raise EntityDecodeException(f"Timestamp {value!r} has no UTC offset", property_name=property_name)
    return parsed.astimezone(timezone.utc)


def parse_uuid(value: str, property_name: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as e:
        raise EntityDecodeException(f"Malformed UUID {value!r}", property_name=property_name) from e


def _matches(value: Any, expected: type) -> bool:
    # bool is a subclass of int but never a valid counter
    if expected is int and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def get_required(entity: Entity, name: str, expected: type) -> Any:
    if not entity.has_property(name):
        raise EntityDecodeException("Missing required property", property_name=name)
    value = entity.get_property(name)
    if not _matches(value, expected):
        raise EntityDecodeException(
            f"Expected {expected.__name__}, got {type(value).__name__}", property_name=name
        )
    return value


def get_optional(entity: Entity, name: str, expected: type, default: Any) -> Any:
    if not entity.has_property(name):
        return default
    return get_required(entity, name, expected)


def get_list(entity: Entity, name: str, item_type: type) -> List[Any]:
    values = get_required(entity, name, list)
    for value in values:
        if not _matches(value, item_type):
            raise EntityDecodeException(
                f"Expected list of {item_type.__name__}, found {type(value).__name__}", property_name=name
            )
    return values


# Visibility mapping

def encode_visibilities(visibilities: Mapping[UUID, bool]) -> Tuple[List[str], List[bool]]:
    conversation_ids = [str(conversation_id) for conversation_id in visibilities.keys()]
    flags = list(visibilities.values())
    return conversation_ids, flags


def decode_visibilities(entity: Entity) -> Dict[UUID, bool]:
    conversation_ids = get_list(entity, "conversationIds", str)
    flags = get_list(entity, "hiddenConversations", bool)
    if len(conversation_ids) != len(flags):
        raise EntityDecodeException(
            f"conversationIds has {len(conversation_ids)} entries but hiddenConversations has {len(flags)}",
            property_name="hiddenConversations",
        )
    return {
        parse_uuid(conversation_id, "conversationIds"): flag
        for conversation_id, flag in zip(conversation_ids, flags)
    }


# Users

def _set_user_mutable_properties(entity: Entity, user: User) -> None:
    conversation_ids, flags = encode_visibilities(user.conversation_visibilities)
    entity.set_property("about", user.about)
    entity.set_property("allowMessageDel", user.allow_message_del)
    entity.set_property("messagesSent", user.messages_sent)
    entity.set_property("showAllConvs", user.show_all_conversations)
    entity.set_property("isAdmin", user.is_admin)
    entity.set_property("profilePicture", Blob(user.profile_picture))
    entity.set_property("conversationIds", conversation_ids)
    entity.set_property("hiddenConversations", flags)


def user_to_entity(user: User, kind: str) -> Entity:
    entity = Entity(kind, key=user.id)
    entity.set_property("uuid", str(user.id))
    entity.set_property("username", user.name)
    entity.set_property("password", user.password_hash)
    entity.set_property("creation", format_instant(user.creation))
    _set_user_mutable_properties(entity, user)
    return entity


def apply_user_update(entity: Entity, user: User) -> None:
    """Overwrite the mutable properties of a previously loaded user entity."""
    _set_user_mutable_properties(entity, user)


def user_from_entity(entity: Entity, defaults: Mapping[str, Any]) -> User:
    """
    Decode a user entity.

    Properties listed in ``defaults`` may be absent (entities written before
    they existed) and fall back to the given value.

    Raises:
        EntityDecodeException: If a property is missing, mistyped or malformed
    """
    blob = get_required(entity, "profilePicture", Blob)
    return User(
        id=parse_uuid(get_required(entity, "uuid", str), "uuid"),
        name=get_required(entity, "username", str),
        password_hash=get_required(entity, "password", str),
        about=get_required(entity, "about", str),
        allow_message_del=get_optional(entity, "allowMessageDel", bool, defaults["allowMessageDel"]),
        messages_sent=get_optional(entity, "messagesSent", int, defaults["messagesSent"]),
        creation=parse_instant(get_required(entity, "creation", str), "creation"),
        show_all_conversations=get_required(entity, "showAllConvs", bool),
        is_admin=get_required(entity, "isAdmin", bool),
        profile_picture=blob.bytes,
        conversation_visibilities=decode_visibilities(entity),
    )


# Conversations

def conversation_to_entity(conversation: Conversation, kind: str) -> Entity:
    entity = Entity(kind, key=conversation.id)
    entity.set_property("uuid", str(conversation.id))
    entity.set_property("owner_uuid", str(conversation.owner_id))
    entity.set_property("title", conversation.title)
    entity.set_property("creation_time", format_instant(conversation.creation))
    return entity


def conversation_from_entity(entity: Entity) -> Conversation:
    return Conversation(
        id=parse_uuid(get_required(entity, "uuid", str), "uuid"),
        owner_id=parse_uuid(get_required(entity, "owner_uuid", str), "owner_uuid"),
        title=get_required(entity, "title", str),
        creation=parse_instant(get_required(entity, "creation_time", str), "creation_time"),
    )


# Messages

def message_to_entity(message: Message, kind: str) -> Entity:
    entity = Entity(kind, key=message.id)
    entity.set_property("uuid", str(message.id))
    entity.set_property("conv_uuid", str(message.conversation_id))
    entity.set_property("author_uuid", str(message.author_id))
    entity.set_property("content", message.content)
    entity.set_property("creation_time", format_instant(message.creation))
    return entity


def message_from_entity(entity: Entity) -> Message:
    return Message(
        id=parse_uuid(get_required(entity, "uuid", str), "uuid"),
        conversation_id=parse_uuid(get_required(entity, "conv_uuid", str), "conv_uuid"),
        author_id=parse_uuid(get_required(entity, "author_uuid", str), "author_uuid"),
        content=get_required(entity, "content", str),
        creation=parse_instant(get_required(entity, "creation_time", str), "creation_time"),
    )
