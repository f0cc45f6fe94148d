"""Change-feed event models.

A change event is a tagged variant discriminated on ``kind``. Inserts and
updates carry the full record; deletes carry only the identifier.
"""

from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .bookmark import Bookmark


class InsertEvent(BaseModel):
    kind: Literal["insert"] = "insert"
    record: Bookmark


class UpdateEvent(BaseModel):
    kind: Literal["update"] = "update"
    record: Bookmark


class DeleteEvent(BaseModel):
    kind: Literal["delete"] = "delete"
    id: str = Field(..., min_length=1)


ChangeEvent = Annotated[
    Union[InsertEvent, UpdateEvent, DeleteEvent],
    Field(discriminator="kind"),
]

_change_event_adapter = TypeAdapter(ChangeEvent)


def parse_change_event(data: Union[Dict[str, Any], str, bytes]) -> ChangeEvent:
    """Validate a raw payload (dict or JSON text) into a change event.

    Raises:
        pydantic.ValidationError: If the payload has an unknown kind or an
            invalid record
    """
    if isinstance(data, (str, bytes)):
        return _change_event_adapter.validate_json(data)

    return _change_event_adapter.validate_python(data)


def dump_change_event(event: ChangeEvent) -> str:
    """Serialize a change event to a single JSON line."""
    return event.model_dump_json()
