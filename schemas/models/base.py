"""
Base model for MongoDB documents.

``PyObjectId`` lets pydantic accept a BSON ObjectId (or its 24-hex string
form) and serialise it back to a string for JSON. ``MongoBaseModel`` maps
the ``_id`` key to ``id`` and converts to and from raw pymongo dicts.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional, TypeVar

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator


def _coerce_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"Invalid ObjectId: {value!r}")


PyObjectId = Annotated[
    ObjectId,
    PlainValidator(_coerce_object_id),
    PlainSerializer(str, when_used="json"),
]

M = TypeVar("M", bound="MongoBaseModel")


class MongoBaseModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        validate_assignment=True,
    )

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    def to_mongo(self) -> dict:
        """Dict for insert_one; an unset ``_id`` is left for MongoDB to assign."""
        data = self.model_dump(by_alias=True)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls: type[M], data: Optional[dict]) -> Optional[M]:
        if data is None:
            return None
        return cls.model_validate(data)
