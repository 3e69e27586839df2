from sqlalchemy import Column, String, JSON
from .base import Base

class EntityRow(Base):
    """One datastore entity: its storage key (``id``), kind and property bag."""
    __tablename__ = "entities"

    kind = Column(String(100), nullable=False, index=True)
    properties = Column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<EntityRow(id={self.id}, kind='{self.kind}')>"
