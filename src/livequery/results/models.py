"""Result entries and the wire envelope sent to development clients."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MessageType(Enum):
    """Server to client message types."""

    PAGE_QUERY_RESULT = "pageQueryResult"
    STATIC_QUERY_RESULT = "staticQueryResult"


@dataclass
class ResultEntry:
    """A query result keyed by page path or static query hash."""

    id: str
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the payload shape used on the wire."""
        return {"id": self.id, "result": self.result}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResultEntry":
        """Create from a payload dictionary."""
        return cls(id=data["id"], result=data.get("result"))


def build_message(message_type: MessageType, entry: ResultEntry) -> dict[str, Any]:
    """Wrap an entry in the message envelope.

    Args:
        message_type: Kind of result being delivered
        entry: Result entry used as payload

    Returns:
        Envelope dictionary ready for ``send_json``
    """
    return {"type": message_type.value, "payload": entry.to_dict()}


def page_message(entry: ResultEntry) -> dict[str, Any]:
    return build_message(MessageType.PAGE_QUERY_RESULT, entry)


def static_message(entry: ResultEntry) -> dict[str, Any]:
    return build_message(MessageType.STATIC_QUERY_RESULT, entry)
