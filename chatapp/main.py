from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List

from chatapp.core.log_config import logger
from chatapp.database.datastore import Datastore
from chatapp.database.session import create_engine, create_session_factory, initialize_db
from chatapp.schemas.conversation import Conversation
from chatapp.schemas.message import Message
from chatapp.schemas.user import User
from chatapp.services.persistent_data_store import PersistentDataStore


@dataclass
class AppState:
    """Records loaded at startup, plus the store used to write them back."""
    store: PersistentDataStore
    users: List[User] = field(default_factory=list)
    admins: List[User] = field(default_factory=list)
    conversations: List[Conversation] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)


async def load_state(store: PersistentDataStore) -> AppState:
    """
    Run the startup loads: users, admins, conversations, messages.

    Raises:
        PersistentDataStoreException: If any of the loads fails
    """
    state = AppState(store=store)
    state.users = await store.load_users()
    state.admins = await store.load_admins()
    state.conversations = await store.load_conversations()
    state.messages = await store.load_messages()
    logger.info(
        f"Startup load complete: {len(state.users)} users ({len(state.admins)} admins), "
        f"{len(state.conversations)} conversations, {len(state.messages)} messages"
    )
    return state


@asynccontextmanager
async def lifespan(database_url: str = None):
    engine = create_engine(database_url)
    await initialize_db(engine)
    store = PersistentDataStore(Datastore(create_session_factory(engine)))
    try:
        yield await load_state(store)
    finally:
        await engine.dispose()
