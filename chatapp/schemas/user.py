import base64
from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from chatapp.core.security import hash_password, verify_password


class User(BaseModel):
    """
    A registered chat user.

    Identity, name, password hash and creation time are fixed at
    construction; assigning to them raises a ``ValidationError``. Everything
    else is mutable, either by assignment or through the helpers below.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(..., frozen=True)
    name: str = Field(..., frozen=True)
    password_hash: str = Field(..., frozen=True, repr=False)
    about: str
    allow_message_del: bool
    messages_sent: int
    creation: AwareDatetime = Field(..., frozen=True)
    show_all_conversations: bool
    is_admin: bool
    profile_picture: bytes = Field(default=b"", repr=False)
    conversation_visibilities: Dict[UUID, bool] = Field(default_factory=dict)

    @classmethod
    def register(
        cls,
        name: str,
        password: str,
        creation: Optional[datetime] = None,
        is_admin: bool = False,
        user_id: Optional[UUID] = None,
    ) -> "User":
        """
        Create a brand new user with registration defaults.

        Args:
            name: Username
            password: Plain password, stored only as a salted hash
            creation: Creation time, defaults to now (UTC)
            is_admin: Whether the user starts as an administrator
            user_id: Identifier, generated when omitted

        Returns:
            User with a greeting as its about text, message deletion allowed,
            no messages sent and no tracked conversations
        """
        return cls(
            id=user_id or uuid4(),
            name=name,
            password_hash=hash_password(password),
            about=f"Hi! I'm {name}!",
            allow_message_del=True,
            messages_sent=0,
            creation=creation or datetime.now(timezone.utc),
            show_all_conversations=False,
            is_admin=is_admin,
            profile_picture=b"",
            conversation_visibilities={},
        )

    def check_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)

    def invert_admin_status(self) -> None:
        self.is_admin = not self.is_admin

    def inc_messages_sent(self) -> None:
        self.messages_sent += 1

    @property
    def encoded_image(self) -> str:
        """The profile picture as a Base64 string."""
        return base64.b64encode(self.profile_picture).decode("ascii")

    # Conversation visibility

    def add_conversation(self, conversation_id: UUID) -> None:
        """Track a conversation as visible. An existing entry is left as is."""
        self.conversation_visibilities.setdefault(conversation_id, True)

    def hide_conversation(self, conversation_id: UUID) -> None:
        """Hide a tracked conversation. Untracked ids are ignored."""
        if conversation_id in self.conversation_visibilities:
            self.conversation_visibilities[conversation_id] = False

    def reset_conversation_visibilities(self) -> None:
        """Make every tracked conversation visible again."""
        for conversation_id in self.conversation_visibilities:
            self.conversation_visibilities[conversation_id] = True

    def is_conversation_visible(self, conversation_id: UUID) -> Optional[bool]:
        """Visibility of a tracked conversation, or None if it is not tracked."""
        return self.conversation_visibilities.get(conversation_id)
