"""Base models and helpers for MongoDB persistence."""
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Type, TypeVar

from pydantic import BaseModel, ConfigDict

M = TypeVar("M", bound="MongoModel")


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


class MongoModel(BaseModel):
    """Common base class for documents persisted in MongoDB."""

    model_config = ConfigDict(populate_by_name=True)

    # Attribute stored as the document's ``_id``; empty keeps Mongo's generated id
    id_field: ClassVar[str] = ""

    def to_mongo_dict(self) -> Dict[str, Any]:
        """Return dict suitable for MongoDB writes."""
        data = self.model_dump()
        if self.id_field:
            data["_id"] = data.pop(self.id_field)
        return data

    @classmethod
    def from_mongo_dict(cls: Type[M], data: Dict[str, Any]) -> M:
        """Instantiate from a MongoDB result payload."""
        data = dict(data)
        raw_id = data.pop("_id", None)
        if cls.id_field and raw_id is not None:
            data[cls.id_field] = raw_id
        return cls(**data)
