"""
Shared Pydantic v2 configuration for API payloads.

Python attributes stay snake_case; the wire format is camelCase
(e.g. is_active ↔ isActive). Both spellings are accepted on input.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(CamelModel):
    """Every successful response carries success=true."""

    success: bool = True


class MessageOut(Envelope):
    message: str
