from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict


class Conversation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    owner_id: UUID
    title: str
    creation: AwareDatetime

    @classmethod
    def create(cls, owner_id: UUID, title: str) -> "Conversation":
        return cls(id=uuid4(), owner_id=owner_id, title=title, creation=datetime.now(timezone.utc))
