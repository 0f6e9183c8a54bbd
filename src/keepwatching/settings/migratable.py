from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticUndefined


class MigratableBaseModel(BaseModel):
    """Fills fields missing from an older settings file with their defaults."""

    def __init__(self, **data: Any):
        for field_name, field in type(self).model_fields.items():
            if field_name not in data:
                if (
                    field.default_factory is not None
                    and field.default_factory != PydanticUndefined
                ):
                    data[field_name] = field.default_factory()
                elif field.default is not None and field.default != PydanticUndefined:
                    data[field_name] = field.default
            # An empty section in the file gets its default contents back
            elif isinstance(data[field_name], dict) and len(data[field_name]) == 0:
                if (
                    field.default_factory is not None
                    and field.default_factory != PydanticUndefined
                ):
                    default_value = field.default_factory()

                    if isinstance(default_value, BaseModel):
                        data[field_name] = default_value

        super().__init__(**data)
