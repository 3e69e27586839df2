from enum import Enum


class WriteStatus(str, Enum):
    WRITTEN = "written"
    UPDATED = "updated"
    DELETED = "deleted"
    NOT_FOUND = "not_found"
