"""
Document base for the users, sessions and verification_tokens collections.

Pydantic v2 cannot validate a bson ObjectId on its own, so PyObjectId plugs
one in. Repositories go through to_mongo() / from_mongo() and never build
raw dicts by hand.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import core_schema


class PyObjectId(ObjectId):
    """ObjectId accepting hex strings on input and dumping to str in JSON mode."""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                cls._serialize, when_used="json"
            ),
        )

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")

    @staticmethod
    def _serialize(v: ObjectId) -> str:
        return str(v)


def to_object_id(value: Any) -> ObjectId:
    """Accept an ObjectId or its 24-char hex form. Raises ValueError otherwise."""
    return PyObjectId._validate(value)


class MongoBaseModel(BaseModel):
    """Common `_id` handling. Stored as `id` on the Python side."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    def to_mongo(self, *, include_id: bool = True) -> dict:
        """Dump for pymongo: `_id` by alias, enums by value.

        A missing id is left out so the server assigns one. `include_id=False`
        gives a payload suitable for `$set` or `$setOnInsert`.
        """
        data = self.model_dump(by_alias=True, exclude_none=False, mode="python")
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        if not include_id or data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls, data: Optional[dict]):
        """Validate a raw document; `None` (a find_one miss) passes through."""
        if data is None:
            return None
        return cls.model_validate(data)
