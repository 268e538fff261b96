"""In-process tool definitions.

A tool is a name, a description, a JSON Schema for its input and a
handler mapping the argument dict to a ToolResult.

Example:
    @tool("add", "Add two numbers", {"a": float, "b": float})
    def add(args):
        return ToolResult.text(str(args["a"] + args["b"]))
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union


@dataclass(frozen=True)
class ToolResultContent:
    """One content item of a tool result: text, or base64 data with a MIME type."""

    type: str = "text"
    text: Optional[str] = None
    data: Optional[str] = None
    mime_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.text is not None:
            result["text"] = self.text
        if self.data is not None:
            result["data"] = self.data
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        return result


@dataclass(frozen=True)
class ToolResult:
    """Result of a tool handler."""

    content: List[ToolResultContent] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=[ToolResultContent(type="text", text=text)])

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls(content=[ToolResultContent(type="text", text=message)], is_error=True)

    @classmethod
    def image(cls, data: str, mime_type: str = "image/png") -> "ToolResult":
        """Image result; ``data`` is base64-encoded."""
        return cls(content=[ToolResultContent(type="image", data=data, mime_type=mime_type)])

    @property
    def text_content(self) -> str:
        return "".join(c.text for c in self.content if c.text is not None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": [c.to_dict() for c in self.content],
            "isError": self.is_error,
        }


ToolHandler = Callable[[Dict[str, Any]], Union[ToolResult, str]]


# Shorthand type names accepted in a schema like {"a": "number"}
_PYTHON_TYPES: Dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def build_input_schema(schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Expand a shorthand ``{name: type}`` schema into an object JSON Schema.

    A dict that already has a ``"type"`` key is taken as a full JSON Schema
    and returned unchanged. In the shorthand, every property is required and
    a type may be a Python type or a JSON Schema type name.
    """
    if not schema:
        return {"type": "object", "properties": {}}
    if "type" in schema and isinstance(schema["type"], str):
        return schema

    properties: Dict[str, Any] = {}
    for name, type_spec in schema.items():
        if isinstance(type_spec, dict):
            properties[name] = type_spec
        elif isinstance(type_spec, str):
            properties[name] = {"type": type_spec}
        elif type_spec in _PYTHON_TYPES:
            properties[name] = {"type": _PYTHON_TYPES[type_spec]}
        else:
            raise TypeError(f"Unsupported schema type for {name!r}: {type_spec!r}")

    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
    }


@dataclass(frozen=True)
class SDKTool:
    """A tool served by an in-process tool server."""

    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler

    def definition(self) -> Dict[str, Any]:
        """Tool metadata as listed by ``tools/list``."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def invoke(self, arguments: Dict[str, Any]) -> ToolResult:
        """Run the handler; a bare string return becomes a text result."""
        result = self.handler(arguments)
        if isinstance(result, str):
            return ToolResult.text(result)
        if not isinstance(result, ToolResult):
            raise TypeError(
                f"Tool {self.name!r} returned {type(result).__name__}, "
                f"expected ToolResult or str"
            )
        return result


def tool(
    name: str,
    description: str,
    schema: Optional[Dict[str, Any]] = None,
) -> Callable[[ToolHandler], SDKTool]:
    """Decorator turning a handler function into an SDKTool."""

    def decorator(handler: ToolHandler) -> SDKTool:
        return SDKTool(
            name=name,
            description=description,
            input_schema=build_input_schema(schema),
            handler=handler,
        )

    return decorator
