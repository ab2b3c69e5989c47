"""CDP wire format.

Every message is one JSON object:

- command:  {"id": 1, "method": "Page.navigate", "params": {...}}
- response: {"id": 1, "result": {...}} or {"id": 1, "error": {"message": ..., "data": ...}}
- event:    {"method": "Page.loadEventFired", "params": {...}}

Responses and events are told apart by the presence of ``id``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

DOMAIN_SEPARATOR = "."


def is_int_not_bool(x: object) -> bool:
    """Check if x is an int but not a bool (True would alias id 1)."""
    return isinstance(x, int) and not isinstance(x, bool)


def domain_of(method: str) -> str:
    """Return the domain of a method name ("Page.navigate" -> "Page")."""
    return method.split(DOMAIN_SEPARATOR, 1)[0]


@dataclass(frozen=True, slots=True)
class WireCommand:
    """Outgoing command."""

    id: int
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {"id": self.id, "method": self.method, "params": self.params}


@dataclass(frozen=True, slots=True)
class WireErrorCause:
    """The ``error`` object of a failed response."""

    message: str | None = None
    data: Any = None
    code: int | None = None

    def to_json(self) -> dict[str, Any]:
        obj: dict[str, Any] = {}
        if self.code is not None:
            obj["code"] = self.code
        if self.message is not None:
            obj["message"] = self.message
        if self.data is not None:
            obj["data"] = self.data
        return obj

    @staticmethod
    def from_json(obj: Any) -> WireErrorCause:
        if not isinstance(obj, dict):
            # Some targets send a bare string
            return WireErrorCause(message=str(obj))
        message = obj.get("message")
        code = obj.get("code")
        return WireErrorCause(
            message=None if message is None else str(message),
            data=obj.get("data"),
            code=code if is_int_not_bool(code) else None,
        )


@dataclass(frozen=True, slots=True)
class WireResponse:
    """Reply to a command, carrying either ``result`` or ``error``."""

    id: int
    result: Any = None
    error: WireErrorCause | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @staticmethod
    def from_json(obj: dict[str, Any]) -> WireResponse:
        msg_id = obj["id"]
        if not is_int_not_bool(msg_id):
            msg = f"Response id must be an integer, got {type(msg_id).__name__}"
            raise ValueError(msg)
        error = obj.get("error")
        result = obj.get("result")
        return WireResponse(
            msg_id,
            {} if result is None else result,
            None if error is None else WireErrorCause.from_json(error),
        )


@dataclass(frozen=True, slots=True)
class WireEvent:
    """Notification pushed by the target."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def domain(self) -> str:
        return domain_of(self.method)

    @staticmethod
    def from_json(obj: dict[str, Any]) -> WireEvent:
        method = obj["method"]
        if not isinstance(method, str) or not method:
            msg = f"Event method must be a non-empty string, got {method!r}"
            raise ValueError(msg)
        params = obj.get("params")
        return WireEvent(method, {} if params is None else params)


WireMessage = WireResponse | WireEvent


def serialize_command(command: WireCommand) -> str:
    """Serialize a command to JSON text."""
    return json.dumps(command.to_json(), separators=(",", ":"))


def parse_message(data: str | bytes) -> WireMessage | None:
    """Parse one inbound message.

    Returns:
        A WireResponse, a WireEvent, or None for objects that are neither

    Raises:
        ValueError: if ``data`` is not a JSON object or has malformed fields
    """
    try:
        obj = json.loads(data)
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(obj, dict):
        msg = f"Message must be a JSON object, got {type(obj).__name__}"
        raise ValueError(msg)

    if obj.get("id") is not None:
        return WireResponse.from_json(obj)
    if obj.get("method") is not None:
        return WireEvent.from_json(obj)
    return None
