from datetime import datetime, timezone
from enum import Enum
from typing import List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _render(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds, e.g. 2024-01-01T00:00:00.000Z"""
    return _render(datetime.now(timezone.utc))


def normalize_timestamp(value: str) -> str:
    """Re-render an ISO-8601 string in the utcnow_iso shape.

    Stored timestamps are compared as text, so they must all share one
    fixed-width UTC form. Naive values are taken as UTC. Raises ValueError
    for anything that is not ISO-8601.
    """
    if not isinstance(value, str):
        raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}")
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}") from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return _render(moment)


class Sender(str, Enum):
    USER = "user"
    AI = "ai"


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(_Record):
    id: str
    conversation_id: str
    sender: Sender
    text: str
    timestamp: str = Field(default_factory=utcnow_iso)


class Conversation(_Record):
    id: str
    created_at: str = Field(default_factory=utcnow_iso)
    updated_at: str = Field(default_factory=utcnow_iso)
    messages: List[Message] = Field(default_factory=list)
