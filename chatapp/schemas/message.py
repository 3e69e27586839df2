from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class Message(BaseModel):
    """A chat message. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    conversation_id: UUID = Field(..., description="Conversation the message was posted in")
    author_id: UUID = Field(..., description="User who wrote the message")
    content: str
    creation: AwareDatetime

    @classmethod
    def create(cls, conversation_id: UUID, author_id: UUID, content: str) -> "Message":
        return cls(
            id=uuid4(),
            conversation_id=conversation_id,
            author_id=author_id,
            content=content,
            creation=datetime.now(timezone.utc),
        )
