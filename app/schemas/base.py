"""
Base Pydantic schemas with common configuration.

The HTTP API speaks camelCase JSON; Python code uses snake_case attributes.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base schema for API payloads.
    
    Accepts either camelCase or snake_case on input and serializes with
    camelCase aliases. Also reads directly from SQLAlchemy models.
    """
    
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
