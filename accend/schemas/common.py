import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from accend.clock import iso_utc

# Stored naive, sent as UTC
UtcDateTime = Annotated[datetime.datetime, PlainSerializer(iso_utc, return_type=str)]


class CamelModel(BaseModel):
    """Base for API payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
