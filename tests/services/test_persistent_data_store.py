import pytest
from uuid import uuid4
from chatapp.core.exceptions import EntityDecodeException, PersistentDataStoreException
from chatapp.database.datastore import Blob, Entity
from chatapp.schemas.conversation import Conversation
from chatapp.schemas.common import WriteStatus
from chatapp.schemas.message import Message
from chatapp.schemas.user import User


def legacy_user_entity(**overrides):
    """A user entity as written before allowMessageDel/messagesSent existed."""
    properties = {
        "uuid": str(uuid4()),
        "username": "legacy",
        "password": "not-a-hash",
        "about": "old account",
        "creation": "2018-02-20T09:00:00Z",
        "showAllConvs": False,
        "isAdmin": False,
        "profilePicture": Blob(b""),
        "conversationIds": [],
        "hiddenConversations": [],
    }
    properties.update(overrides)
    return Entity("chat-users", properties=properties)


@pytest.mark.asyncio
async def test_user_round_trip(store, test_user):
    visible, hidden = uuid4(), uuid4()
    test_user.add_conversation(visible)
    test_user.add_conversation(hidden)
    test_user.hide_conversation(hidden)
    test_user.profile_picture = b"\x89PNG\r\n"
    test_user.inc_messages_sent()

    assert await store.write_user(test_user) == WriteStatus.WRITTEN
    [loaded] = await store.load_users()

    assert loaded.model_dump() == test_user.model_dump()
    assert loaded.conversation_visibilities == {visible: True, hidden: False}
    assert loaded.check_password("password123")

@pytest.mark.asyncio
async def test_conversation_and_message_round_trip(store):
    owner_id = uuid4()
    conversation = Conversation.create(owner_id, "general")
    message = Message.create(conversation.id, owner_id, "hello there")

    await store.write_conversation(conversation)
    await store.write_message(message)

    assert await store.load_conversations() == [conversation]
    assert await store.load_messages() == [message]

@pytest.mark.asyncio
async def test_creation_stored_as_utc_instant(store, datastore, test_user):
    await store.write_user(test_user)

    [entity] = await datastore.query("chat-users")

    assert entity.get_property("creation") == "2018-03-01T12:30:15.250000Z"

@pytest.mark.asyncio
async def test_legacy_user_defaults(store, datastore):
    await datastore.put(legacy_user_entity())

    [user] = await store.load_users()

    assert user.allow_message_del is False
    assert user.messages_sent == -1

@pytest.mark.asyncio
async def test_legacy_defaults_are_configurable(datastore):
    from chatapp.services.persistent_data_store import PersistentDataStore

    store = PersistentDataStore(
        datastore, legacy_user_defaults={"allowMessageDel": True, "messagesSent": 0}
    )
    await datastore.put(legacy_user_entity())

    [user] = await store.load_users()

    assert user.allow_message_del is True
    assert user.messages_sent == 0

@pytest.mark.asyncio
async def test_misaligned_visibility_lists_rejected(store, datastore):
    await datastore.put(legacy_user_entity(
        conversationIds=[str(uuid4()), str(uuid4())],
        hiddenConversations=[True],
    ))

    with pytest.raises(PersistentDataStoreException) as exc_info:
        await store.load_users()

    assert isinstance(exc_info.value.cause, EntityDecodeException)
    assert exc_info.value.cause.property_name == "hiddenConversations"

@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"uuid": "not-a-uuid"},
    {"creation": "yesterday"},
    {"creation": "2018-02-20T09:00:00"},
    {"isAdmin": "yes"},
    {"messagesSent": True},
    {"conversationIds": [str(uuid4())], "hiddenConversations": ["true"]},
])
async def test_malformed_user_entity_aborts_load(store, datastore, overrides):
    await datastore.put(legacy_user_entity(**overrides))

    with pytest.raises(PersistentDataStoreException) as exc_info:
        await store.load_users()

    assert isinstance(exc_info.value.cause, EntityDecodeException)

@pytest.mark.asyncio
async def test_missing_required_property_aborts_load(store, datastore):
    entity = legacy_user_entity()
    entity.remove_property("profilePicture")
    await datastore.put(entity)

    with pytest.raises(PersistentDataStoreException) as exc_info:
        await store.load_users()

    assert exc_info.value.cause.property_name == "profilePicture"

@pytest.mark.asyncio
async def test_failed_load_keeps_previous_lookup_table(store, datastore, test_user):
    await store.write_user(test_user)
    await store.load_users()
    await datastore.put(legacy_user_entity(uuid="broken"))

    with pytest.raises(PersistentDataStoreException):
        await store.load_users()

    assert test_user.id in store.user_entities_by_id

@pytest.mark.asyncio
async def test_malformed_message_aborts_load(store, datastore):
    await datastore.put(Entity("chat-messages", properties={
        "uuid": str(uuid4()),
        "conv_uuid": str(uuid4()),
        "author_uuid": str(uuid4()),
        "content": "hi",
    }))

    with pytest.raises(PersistentDataStoreException):
        await store.load_messages()

@pytest.mark.asyncio
async def test_load_admins_matches_filtered_users(store):
    admin = User.register("root", "password123", is_admin=True)
    regular = User.register("guest", "password123")
    promoted = User.register("mod", "password123")
    promoted.invert_admin_status()
    for user in (admin, regular, promoted):
        await store.write_user(user)

    users = await store.load_users()
    admins = await store.load_admins()

    assert sorted(user.name for user in admins) == ["mod", "root"]
    assert sorted(u.name for u in admins) == sorted(u.name for u in users if u.is_admin)

@pytest.mark.asyncio
async def test_update_never_loaded_user_is_noop(store, datastore, test_user):
    assert await store.update_user(test_user) == WriteStatus.NOT_FOUND
    assert await datastore.query("chat-users") == []

@pytest.mark.asyncio
async def test_update_overwrites_mutable_fields_only(store, datastore, test_user):
    await store.write_user(test_user)
    [loaded] = await store.load_users()
    conversation_id = uuid4()
    loaded.about = "updated"
    loaded.allow_message_del = False
    loaded.show_all_conversations = True
    loaded.invert_admin_status()
    loaded.inc_messages_sent()
    loaded.profile_picture = b"new"
    loaded.add_conversation(conversation_id)

    assert await store.update_user(loaded) == WriteStatus.UPDATED

    [entity] = await datastore.query("chat-users")
    [reloaded] = await store.load_users()
    assert reloaded.model_dump() == loaded.model_dump()
    assert entity.get_property("uuid") == str(test_user.id)
    assert entity.get_property("username") == "Ada"
    assert entity.get_property("password") == test_user.password_hash

@pytest.mark.asyncio
async def test_write_replaces_loaded_user(store, datastore, test_user):
    await store.write_user(test_user)
    [loaded] = await store.load_users()
    loaded.about = "rewritten"

    await store.write_user(loaded)

    entities = await datastore.query("chat-users")
    assert len(entities) == 1
    assert entities[0].get_property("about") == "rewritten"

@pytest.mark.asyncio
async def test_delete_user(store, datastore, test_user):
    await store.write_user(test_user)
    await store.load_users()

    assert await store.delete_user(test_user) == WriteStatus.DELETED
    assert await datastore.query("chat-users") == []
    assert await store.delete_user(test_user) == WriteStatus.NOT_FOUND
    assert await store.update_user(test_user) == WriteStatus.NOT_FOUND

@pytest.mark.asyncio
async def test_delete_never_loaded_message_is_noop(store, datastore):
    message = Message.create(uuid4(), uuid4(), "stored elsewhere")
    other = Message.create(uuid4(), uuid4(), "already stored")
    await datastore.put(Entity("chat-messages", properties={
        "uuid": str(other.id),
        "conv_uuid": str(other.conversation_id),
        "author_uuid": str(other.author_id),
        "content": other.content,
        "creation_time": "2018-03-01T12:00:00Z",
    }))

    assert await store.delete_message(message) == WriteStatus.NOT_FOUND
    assert len(await datastore.query("chat-messages")) == 1

@pytest.mark.asyncio
async def test_delete_loaded_message_and_conversation(store, datastore):
    conversation = Conversation.create(uuid4(), "general")
    message = Message.create(conversation.id, conversation.owner_id, "bye")
    await store.write_conversation(conversation)
    await store.write_message(message)
    await store.load_conversations()
    await store.load_messages()

    assert await store.delete_message(message) == WriteStatus.DELETED
    assert await store.delete_conversation(conversation) == WriteStatus.DELETED
    assert await datastore.query("chat-messages") == []
    assert await datastore.query("chat-conversations") == []

@pytest.mark.asyncio
async def test_store_failure_surfaces_on_write(store, engine, test_user):
    from chatapp.models.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    with pytest.raises(PersistentDataStoreException):
        await store.write_user(test_user)

@pytest.mark.asyncio
async def test_write_through_separate_stores_replaces_user(datastore, test_user):
    from chatapp.services.persistent_data_store import PersistentDataStore

    await PersistentDataStore(datastore).write_user(test_user)
    test_user.about = "second"
    await PersistentDataStore(datastore).write_user(test_user)

    users = await PersistentDataStore(datastore).load_users()

    assert len(users) == 1
    assert users[0].about == "second"

@pytest.mark.asyncio
async def test_write_through_separate_stores_replaces_conversation_and_message(datastore):
    from chatapp.services.persistent_data_store import PersistentDataStore

    conversation = Conversation.create(uuid4(), "general")
    message = Message.create(conversation.id, conversation.owner_id, "hello")
    for _ in range(2):
        fresh = PersistentDataStore(datastore)
        await fresh.write_conversation(conversation)
        await fresh.write_message(message)

    reader = PersistentDataStore(datastore)
    assert await reader.load_conversations() == [conversation]
    assert await reader.load_messages() == [message]

@pytest.mark.asyncio
async def test_entities_are_keyed_by_record_id(store, datastore, test_user):
    await store.write_user(test_user)

    [entity] = await datastore.query("chat-users")

    assert entity.key == test_user.id

@pytest.mark.asyncio
async def test_failed_update_keeps_cached_entity(store, engine, test_user):
    from chatapp.models.base import Base

    await store.write_user(test_user)
    await store.load_users()
    test_user.about = "changed"
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    with pytest.raises(PersistentDataStoreException):
        await store.update_user(test_user)

    assert store.user_entities_by_id[test_user.id].get_property("about") == "Hi! I'm Ada!"
