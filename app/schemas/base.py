from pydantic import BaseModel
from pydantic.alias_generators import to_camel

class BaseSchema(BaseModel):
    class Config:
        from_attributes = True

class CamelSchema(BaseSchema):
    """Snake-case in Python, camelCase on the wire and on disk."""

    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel
