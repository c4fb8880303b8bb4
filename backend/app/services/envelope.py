"""Envelope parser — normalizes the voice provider's webhook bodies.

The provider has shipped several payload shapes over time. Everything
downstream of ``parse_envelope`` sees exactly one of two values: a
``FunctionInvocation`` to dispatch, or an ``Ignorable`` lifecycle notice.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from app.errors import MalformedRequest

logger = logging.getLogger(__name__)

LIFECYCLE_TYPES = frozenset({
    "status-update",
    "conversation-update",
    "speech-update",
    "end-of-call-report",
    "hang",
    "transcript",
    "user-interrupted",
})

ASSISTANT_ID_HEADERS = ("x-vapi-assistant-id", "x-assistant-id")


@dataclass(frozen=True)
class FunctionInvocation:
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    call_id: Optional[str] = None
    dropped_calls: int = 0


@dataclass(frozen=True)
class Ignorable:
    kind: str


Envelope = Union[FunctionInvocation, Ignorable]


def _dig(body: Any, *path: str) -> Any:
    node = body
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _arguments(raw: Any) -> dict[str, Any]:
    """Coerce a call's arguments to a dict; providers sometimes send a JSON string."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise MalformedRequest("Function arguments are not valid JSON")
    if not isinstance(raw, dict):
        raise MalformedRequest("Function arguments must be a JSON object")
    return raw


def _invocation(name: Any, raw_args: Any, call_id: Any = None, dropped: int = 0) -> FunctionInvocation:
    if not isinstance(name, str) or not name.strip():
        raise MalformedRequest("Function call has no name")
    return FunctionInvocation(
        name=name.strip(),
        parameters=_arguments(raw_args),
        call_id=call_id if isinstance(call_id, str) and call_id else None,
        dropped_calls=dropped,
    )


def _from_tool_calls(calls: Any) -> FunctionInvocation:
    if not isinstance(calls, list) or not calls:
        raise MalformedRequest("tool-calls message has no tool calls")

    first = calls[0] if isinstance(calls[0], Mapping) else {}
    dropped = len(calls) - 1
    if dropped:
        # Only one call per request is served; the rest are reported, not run
        logger.warning(
            "tool-calls batch of %d; executing %r only, %d call(s) not executed",
            len(calls), _dig(first, "function", "name"), dropped,
        )

    fn = first.get("function") or {}
    return _invocation(_dig(fn, "name"), _dig(fn, "arguments"), first.get("id"), dropped)


def _from_function_call(fc: Any) -> FunctionInvocation:
    if not isinstance(fc, Mapping):
        raise MalformedRequest("function-call message has no functionCall")
    args = fc.get("parameters", fc.get("arguments"))
    return _invocation(fc.get("name"), args, fc.get("id"))


def _scan_legacy(body: Mapping[str, Any]) -> Optional[FunctionInvocation]:
    """Look for a function call in the older, untyped payload shapes."""
    message = body.get("message")

    for fc in (body.get("functionCall"), _dig(message, "functionCall")):
        if isinstance(fc, Mapping):
            return _from_function_call(fc)

    for calls in (body.get("toolCalls"), _dig(message, "toolCalls")):
        if isinstance(calls, list) and calls:
            return _from_tool_calls(calls)

    for fn in (body.get("function"), _dig(message, "function"), body.get("tool")):
        if isinstance(fn, Mapping) and fn.get("name"):
            return _invocation(fn.get("name"), fn.get("arguments", fn.get("parameters")))

    for holder in (body, message):
        if isinstance(holder, Mapping) and holder.get("toolName"):
            return _invocation(holder.get("toolName"), holder.get("arguments"))

    return None


def parse_envelope(body: Any) -> Envelope:
    """Classify a webhook body.

    Raises:
        MalformedRequest: the body is not an object, names an unknown message
            type, or carries no recognizable function call.
    """
    if not isinstance(body, Mapping):
        raise MalformedRequest("Request body must be a JSON object")

    kind = _dig(body, "message", "type") or body.get("type")

    if kind is None:
        invocation = _scan_legacy(body)
        if invocation is None:
            raise MalformedRequest("Unrecognized message: no type and no function call")
        return invocation

    if not isinstance(kind, str):
        raise MalformedRequest("Message type must be a string")

    if kind in LIFECYCLE_TYPES:
        return Ignorable(kind=kind)

    message = body.get("message")
    if not isinstance(message, Mapping):
        message = body

    if kind == "tool-calls":
        calls = message.get("toolCalls") or message.get("toolCallList")
        return _from_tool_calls(calls)

    if kind == "function-call":
        return _from_function_call(message.get("functionCall"))

    raise MalformedRequest(f"Unsupported message type: {kind}")


def extract_assistant_id(body: Any, headers: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Find the assistant id, checking body locations before headers."""
    if isinstance(body, Mapping):
        candidates = (
            body.get("assistantId"),
            body.get("assistant_id"),
            _dig(body, "assistant", "id"),
            _dig(body, "call", "assistantId"),
            _dig(body, "message", "assistant", "id"),
            _dig(body, "message", "call", "assistantId"),
        )
        for value in candidates:
            if isinstance(value, str) and value:
                return value

    if headers is not None:
        for name in ASSISTANT_ID_HEADERS:
            value = headers.get(name)
            if value:
                return value

    return None
