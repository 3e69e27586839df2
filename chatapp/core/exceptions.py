# chatapp/core/exceptions.py

from typing import Optional


# Base Exception
class BaseDataStoreException(Exception):
    """Base class for all custom data layer exceptions."""
    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


# Persistence Exceptions
class PersistentDataStoreException(BaseDataStoreException):
    """Exception raised when loading or writing records fails."""
    def __init__(self, cause: Optional[BaseException] = None, detail: str = None):
        if detail is None:
            detail = f"Datastore operation failed: {cause}" if cause else "Datastore operation failed"
        super().__init__(detail=detail)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


# Entity & Schema Exceptions
class EntityDecodeException(BaseDataStoreException):
    """Exception raised when an entity cannot be decoded into a record."""
    def __init__(self, detail="Entity could not be decoded", property_name: str = None):
        if property_name:
            detail = f"{detail} (property '{property_name}')"
        super().__init__(detail=detail)
        self.property_name = property_name


# Database & System Exceptions
class DatastoreUnavailableException(BaseDataStoreException):
    """Exception raised when the backing datastore cannot be reached."""
    def __init__(self, detail="Datastore unavailable"):
        super().__init__(detail=detail)
