"""Control protocol types: control requests, control responses and JSON-RPC.

The CLI uses ``control_request`` messages as a side channel for routing
tool calls to in-process MCP servers, asking permission for tool use and
notifying hook callbacks. Every request carries a ``request_id`` that the
matching ``control_response`` echoes back.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .errors import ProtocolDecodeError
from .wire import (
    optional_dict,
    optional_list,
    optional_str,
    require_dict,
    require_str,
)


# ==================== JSON-RPC 2.0 ====================


JSONRPC_VERSION = "2.0"


class JSONRPCErrorCode:
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


@dataclass(frozen=True)
class JSONRPCMessage:
    """A JSON-RPC 2.0 request or notification embedded in an mcp_message."""

    method: Optional[str] = None
    params: Optional[Dict[str, Any]] = None
    id: Any = None  # str, int, or None for notifications
    jsonrpc: str = JSONRPC_VERSION

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            result["id"] = self.id
        if self.method is not None:
            result["method"] = self.method
        if self.params is not None:
            result["params"] = self.params
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JSONRPCMessage":
        context = "JSON-RPC message"
        return cls(
            method=optional_str(data, "method", context),
            params=optional_dict(data, "params", context),
            id=data.get("id"),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class JSONRPCError:
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass(frozen=True)
class JSONRPCResponse:
    """JSON-RPC 2.0 response: exactly one of result or error is meaningful."""

    id: Any = None
    result: Any = None
    error: Optional[JSONRPCError] = None
    jsonrpc: str = JSONRPC_VERSION

    @classmethod
    def success(cls, id: Any, result: Any) -> "JSONRPCResponse":
        return cls(id=id, result=result)

    @classmethod
    def failure(cls, id: Any, code: int, message: str, data: Any = None) -> "JSONRPCResponse":
        return cls(id=id, error=JSONRPCError(code=code, message=message, data=data))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            result["id"] = self.id
        if self.result is not None:
            result["result"] = self.result
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


# ==================== Control Request Subtypes ====================


@dataclass(frozen=True)
class ControlInitializeRequest:
    """Initialize handshake."""

    hooks: Optional[Dict[str, Any]] = None
    sdk_mcp_servers: Optional[List[str]] = None
    json_schema: Optional[Dict[str, Any]] = None
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None
    agents: Optional[Dict[str, Any]] = None

    subtype = "initialize"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"subtype": self.subtype}
        if self.hooks is not None:
            result["hooks"] = self.hooks
        if self.sdk_mcp_servers is not None:
            result["sdkMcpServers"] = list(self.sdk_mcp_servers)
        if self.json_schema is not None:
            result["jsonSchema"] = self.json_schema
        if self.system_prompt is not None:
            result["systemPrompt"] = self.system_prompt
        if self.append_system_prompt is not None:
            result["appendSystemPrompt"] = self.append_system_prompt
        if self.agents is not None:
            result["agents"] = self.agents
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlInitializeRequest":
        context = "initialize request"
        servers = optional_list(data, "sdkMcpServers", context)
        return cls(
            hooks=optional_dict(data, "hooks", context),
            sdk_mcp_servers=[str(s) for s in servers] if servers is not None else None,
            json_schema=optional_dict(data, "jsonSchema", context),
            system_prompt=optional_str(data, "systemPrompt", context),
            append_system_prompt=optional_str(data, "appendSystemPrompt", context),
            agents=optional_dict(data, "agents", context),
        )


@dataclass(frozen=True)
class ControlMcpMessageRequest:
    """Tool-server traffic routed back to an in-process MCP server."""

    server_name: str
    message: JSONRPCMessage

    subtype = "mcp_message"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtype": self.subtype,
            "server_name": self.server_name,
            "message": self.message.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlMcpMessageRequest":
        context = "mcp_message request"
        return cls(
            server_name=require_str(data, "server_name", context),
            message=JSONRPCMessage.from_dict(require_dict(data, "message", context)),
        )


@dataclass(frozen=True)
class ControlPermissionRequest:
    """In-band permission check (``can_use_tool``)."""

    tool_name: str
    input: Dict[str, Any]
    tool_use_id: Optional[str] = None
    permission_suggestions: Optional[List[Dict[str, Any]]] = None
    blocked_path: Optional[str] = None

    subtype = "can_use_tool"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "subtype": self.subtype,
            "tool_name": self.tool_name,
            "input": self.input,
        }
        if self.tool_use_id is not None:
            result["tool_use_id"] = self.tool_use_id
        if self.permission_suggestions is not None:
            result["permission_suggestions"] = self.permission_suggestions
        if self.blocked_path is not None:
            result["blocked_path"] = self.blocked_path
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlPermissionRequest":
        context = "can_use_tool request"
        return cls(
            tool_name=require_str(data, "tool_name", context),
            input=require_dict(data, "input", context),
            tool_use_id=optional_str(data, "tool_use_id", context),
            permission_suggestions=optional_list(data, "permission_suggestions", context),
            blocked_path=optional_str(data, "blocked_path", context),
        )


@dataclass(frozen=True)
class ControlInterruptRequest:
    """Interrupt notification."""

    subtype = "interrupt"

    def to_dict(self) -> Dict[str, Any]:
        return {"subtype": self.subtype}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlInterruptRequest":
        return cls()


@dataclass(frozen=True)
class ControlSetPermissionModeRequest:
    """Permission mode change."""

    mode: str

    subtype = "set_permission_mode"

    def to_dict(self) -> Dict[str, Any]:
        return {"subtype": self.subtype, "mode": self.mode}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlSetPermissionModeRequest":
        return cls(mode=require_str(data, "mode", "set_permission_mode request"))


@dataclass(frozen=True)
class ControlHookCallbackRequest:
    """Hook notification with a free-form input map."""

    hook: str
    input: Optional[Dict[str, Any]] = None
    callback_id: Optional[str] = None
    tool_use_id: Optional[str] = None

    subtype = "hook_callback"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"subtype": self.subtype, "hook": self.hook}
        if self.input is not None:
            result["input"] = self.input
        if self.callback_id is not None:
            result["callback_id"] = self.callback_id
        if self.tool_use_id is not None:
            result["tool_use_id"] = self.tool_use_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlHookCallbackRequest":
        context = "hook_callback request"
        return cls(
            hook=require_str(data, "hook", context),
            input=optional_dict(data, "input", context),
            callback_id=optional_str(data, "callback_id", context),
            tool_use_id=optional_str(data, "tool_use_id", context),
        )


@dataclass(frozen=True)
class ControlRewindFilesRequest:
    """Rewind tracked files to the checkpoint of a user message."""

    user_message_uuid: str

    subtype = "rewind_files"

    def to_dict(self) -> Dict[str, Any]:
        return {"subtype": self.subtype, "user_message_uuid": self.user_message_uuid}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlRewindFilesRequest":
        return cls(
            user_message_uuid=require_str(data, "user_message_uuid", "rewind_files request")
        )


@dataclass(frozen=True)
class UnknownControlRequest:
    """A control request whose subtype this side does not understand.

    Kept as a variant so the request_id survives decoding and the request
    can still be answered (with an error).
    """

    subtype: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


@dataclass(frozen=True)
class MalformedControlRequest:
    """A control request of a known subtype whose fields failed to decode.

    Answered with an error carrying ``error`` instead of being dropped.
    """

    subtype: Optional[str]
    error: str
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)

    @classmethod
    def from_error(cls, data: Dict[str, Any], error: ProtocolDecodeError) -> "MalformedControlRequest":
        subtype = data.get("subtype")
        return cls(
            subtype=subtype if isinstance(subtype, str) else None,
            error=str(error),
            raw=dict(data),
        )


ControlRequestInner = Union[
    ControlInitializeRequest,
    ControlMcpMessageRequest,
    ControlPermissionRequest,
    ControlInterruptRequest,
    ControlSetPermissionModeRequest,
    ControlHookCallbackRequest,
    ControlRewindFilesRequest,
    MalformedControlRequest,
    UnknownControlRequest,
]


_CONTROL_REQUEST_PARSERS = {
    ControlInitializeRequest.subtype: ControlInitializeRequest.from_dict,
    ControlMcpMessageRequest.subtype: ControlMcpMessageRequest.from_dict,
    ControlPermissionRequest.subtype: ControlPermissionRequest.from_dict,
    ControlInterruptRequest.subtype: ControlInterruptRequest.from_dict,
    ControlSetPermissionModeRequest.subtype: ControlSetPermissionModeRequest.from_dict,
    ControlHookCallbackRequest.subtype: ControlHookCallbackRequest.from_dict,
    ControlRewindFilesRequest.subtype: ControlRewindFilesRequest.from_dict,
}


def parse_control_request_inner(data: Dict[str, Any]) -> ControlRequestInner:
    """Parse the inner ``request`` object of a control_request by subtype."""
    subtype = data.get("subtype")
    if subtype is not None and not isinstance(subtype, str):
        raise ProtocolDecodeError(
            f"control request: field 'subtype' must be a string, got {type(subtype).__name__}"
        )
    parser = _CONTROL_REQUEST_PARSERS.get(subtype)
    if parser is None:
        return UnknownControlRequest(subtype=subtype, raw=dict(data))
    return parser(data)


# ==================== Control Responses ====================


@dataclass(frozen=True)
class ControlResponse:
    """Control response sent from this side to the CLI."""

    response: Dict[str, Any]

    type = "control_response"

    @property
    def request_id(self) -> Optional[str]:
        return self.response.get("request_id")

    @property
    def subtype(self) -> Optional[str]:
        return self.response.get("subtype")

    @property
    def is_error(self) -> bool:
        return self.subtype == "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "response": self.response}

    @classmethod
    def success(cls, request_id: str, result: Optional[Dict[str, Any]] = None) -> "ControlResponse":
        response: Dict[str, Any] = {"subtype": "success", "request_id": request_id}
        if result is not None:
            response["response"] = result
        return cls(response=response)

    @classmethod
    def error(cls, request_id: str, error_message: str) -> "ControlResponse":
        return cls(response={
            "subtype": "error",
            "request_id": request_id,
            "error": error_message,
        })

    @classmethod
    def mcp_response(cls, request_id: str, jsonrpc_response: JSONRPCResponse) -> "ControlResponse":
        """Wrap a tool server's JSON-RPC response for an mcp_message request."""
        return cls(response={
            "subtype": "success",
            "request_id": request_id,
            "mcp_response": jsonrpc_response.to_dict(),
        })
