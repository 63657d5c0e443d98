"""Shared base model for request payloads."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts both camelCase (wire/storage) and snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    def to_document(self, **kwargs) -> Dict[str, Any]:
        """Dump set fields with storage (camelCase) keys."""
        return self.model_dump(by_alias=True, exclude_none=True, **kwargs)
