"""A front for a JSON-RPC server that accepts common method-name variants."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Union

from .methods import (
    METHOD_RESOURCE_READ,
    METHOD_TOOL_CALL,
    get_method_suggestions,
    is_valid_method,
)

METHOD_NOT_FOUND = -32601

RawMessage = Union[bytes, str]

_RESOURCE_READ_ALIASES = frozenset(
    {"resource.read", "resources.read", "read_resource", "get_resource", "Resources.Read"}
)
_TOOL_CALL_ALIASES = frozenset(
    {"tool.call", "tools.call", "call_tool", "execute_tool", "Tools.Call"}
)


class MessageHandler(Protocol):
    """Anything that answers a raw JSON-RPC message."""

    def handle_message(self, message: RawMessage) -> Any: ...


def normalize_method_name(method: str) -> str:
    """Map a common variant of a method name onto the standard one."""
    method = method.replace("/", ".")

    if "resource" in method and "read" in method:
        return METHOD_RESOURCE_READ
    if "tool" in method and "call" in method:
        return METHOD_TOOL_CALL

    if method.startswith("mcp."):
        method = method[len("mcp."):]

    if is_valid_method(method):
        return method
    if method in _RESOURCE_READ_ALIASES:
        return METHOD_RESOURCE_READ
    if method in _TOOL_CALL_ALIASES:
        return METHOD_TOOL_CALL
    return method


def _encode_like(original: RawMessage, payload: Mapping[str, Any]) -> RawMessage:
    text = json.dumps(payload)
    return text if isinstance(original, str) else text.encode("utf-8")


def _with_suggestion(result: Any, method: str) -> Any:
    if not isinstance(result, Mapping):
        return result
    error = result.get("error")
    if not isinstance(error, Mapping) or error.get("code") != METHOD_NOT_FOUND:
        return result
    message = f"{error.get('message', '')}\n{get_method_suggestions(method)}"
    return {**result, "error": {**error, "message": message}}


@dataclass
class MCPMethodWrapper:
    """Normalises method names and explains unknown ones."""

    server: MessageHandler

    def handle_message(self, message: RawMessage) -> Any:
        """Forward ``message`` to the server, fixing its method name first."""
        try:
            request = json.loads(message)
        except (ValueError, TypeError):
            return self.server.handle_message(message)
        if not isinstance(request, dict):
            return self.server.handle_message(message)

        method = request.get("method")
        if not isinstance(method, str):
            return self.server.handle_message(message)

        normalized = normalize_method_name(method)
        if normalized != method:
            request["method"] = normalized
            try:
                message = _encode_like(message, request)
            except (TypeError, ValueError):
                pass

        result = self.server.handle_message(message)
        return _with_suggestion(result, method)


def wrap_mcp_server(server: MessageHandler) -> MCPMethodWrapper:
    """Wrap ``server`` so that it accepts method-name variants."""
    return MCPMethodWrapper(server=server)