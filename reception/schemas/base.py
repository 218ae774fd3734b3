"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models MUST inherit from
BaseResponseSchema; immutable workflow records inherit from FrozenRecordSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ReceptionRecordResponse(BaseResponseSchema):
            id: UUID
            order_id: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for request bodies.

    Extra fields are ignored for forward compatibility with newer clients.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class FrozenRecordSchema(BaseModel):
    """
    Base class for write-once workflow records.

    Instances cannot be mutated after construction; a new record must be
    created instead.
    """
    model_config = ConfigDict(
        frozen=True,
        extra='ignore',
    )
