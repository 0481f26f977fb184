"""Registry and helpers for the JSON-RPC methods the server understands."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

METHOD_RESOURCE_READ = "method.resource.read"
METHOD_TOOL_CALL = "method.tool.call"

# Reserved for later extensions.
METHOD_PROMPT_CREATE = "method.prompt.create"
METHOD_NOTIFICATION_LISTEN = "method.notification.listen"

DEFAULT_REQUEST_ID = "request-id"

MethodFormatter = Callable[[str, str], str]


@dataclass(frozen=True)
class MethodInfo:
    """Documentation and usage details for one JSON-RPC method."""

    name: str
    description: str
    category: str
    parameters: Mapping[str, str] = field(default_factory=dict)
    example: str = ""


_REGISTRY: Mapping[str, MethodInfo] = MappingProxyType(
    {
        METHOD_RESOURCE_READ: MethodInfo(
            name=METHOD_RESOURCE_READ,
            description="Read a resource by URI",
            category="resource",
            parameters=MappingProxyType({"uri": "The URI of the resource to read"}),
            example="""{
  "jsonrpc": "2.0",
  "id": "request-id",
  "method": "method.resource.read",
  "params": {
    "uri": "world://list"
  }
}""",
        ),
        METHOD_TOOL_CALL: MethodInfo(
            name=METHOD_TOOL_CALL,
            description="Call a tool by name with arguments",
            category="tool",
            parameters=MappingProxyType(
                {
                    "name": "The name of the tool to call",
                    "arguments": "Object containing tool-specific arguments",
                }
            ),
            example="""{
  "jsonrpc": "2.0",
  "id": "request-id",
  "method": "method.tool.call",
  "params": {
    "name": "create_world",
    "arguments": {
      "id": "test-world",
      "name": "Test World",
      "description": "A test world",
      "type": "VIRTUAL"
    }
  }
}""",
        ),
    }
)


def default_method_formatter(category: str, action: str) -> str:
    """Format a method name as ``method.<category>.<action>``."""
    return f"method.{category}.{action}"


def list_methods() -> list[str]:
    """All registered method names, sorted."""
    return sorted(_REGISTRY)


def get_method_info(method_name: str) -> Optional[MethodInfo]:
    """Details of a registered method, or None if it is unknown."""
    return _REGISTRY.get(method_name)


def find_method(partial_name: str) -> list[str]:
    """Registered methods containing ``partial_name``, ignoring case, sorted."""
    needle = partial_name.lower()
    return sorted(name for name in _REGISTRY if needle in name.lower())


def format_resource_request(uri: str, request_id: str = "") -> dict[str, Any]:
    """Build a JSON-RPC request that reads the resource at ``uri``."""
    return {
        "jsonrpc": "2.0",
        "id": request_id or DEFAULT_REQUEST_ID,
        "method": METHOD_RESOURCE_READ,
        "params": {"uri": uri},
    }


def format_tool_request(
    tool_name: str, arguments: Optional[Mapping[str, Any]], request_id: str = ""
) -> dict[str, Any]:
    """Build a JSON-RPC request that calls ``tool_name`` with ``arguments``."""
    return {
        "jsonrpc": "2.0",
        "id": request_id or DEFAULT_REQUEST_ID,
        "method": METHOD_TOOL_CALL,
        "params": {"name": tool_name, "arguments": arguments},
    }


def is_valid_method(method_name: str) -> bool:
    """Whether ``method_name`` is registered."""
    return method_name in _REGISTRY


def get_method_suggestions(invalid_method: str) -> str:
    """A hint naming the methods the caller probably meant."""
    matches = find_method(invalid_method)
    if not matches:
        return (
            f"Method '{invalid_method}' not found. Try using one of the standard "
            f"methods: {METHOD_RESOURCE_READ}, {METHOD_TOOL_CALL}"
        )
    return f"Method '{invalid_method}' not found. Did you mean: {', '.join(matches)}?"