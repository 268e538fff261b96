"""In-process MCP tool server.

The server has no socket of its own. The CLI reaches it through
``mcp_message`` control requests, which the control bridge forwards to
``handle_jsonrpc``.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .control import JSONRPCErrorCode, JSONRPCMessage, JSONRPCResponse
from .errors import ToolNotFoundError
from .tools import SDKTool, ToolResult

logger = logging.getLogger(__name__)


PROTOCOL_VERSION = "2025-03-26"


class SDKMCPServer:
    """A named set of tools served over JSON-RPC 2.0.

    Attributes:
        name: Server name the CLI routes ``mcp_message`` requests by.
        version: Version reported in the ``initialize`` response.
    """

    def __init__(self, name: str, version: str = "1.0.0", tools: Optional[List[SDKTool]] = None):
        self.name = name
        self.version = version
        self._tools: Dict[str, SDKTool] = {}
        for t in tools or []:
            self.add_tool(t)

        self._handlers: Dict[str, Callable[[JSONRPCMessage], JSONRPCResponse]] = {
            "initialize": self._handle_initialize,
            "notifications/initialized": self._handle_initialized,
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
            "ping": self._handle_ping,
        }

    def add_tool(self, sdk_tool: SDKTool) -> None:
        """Register a tool; a tool with the same name is replaced."""
        if sdk_tool.name in self._tools:
            logger.warning(f"Replacing tool '{sdk_tool.name}' on server '{self.name}'")
        self._tools[sdk_tool.name] = sdk_tool

    @property
    def tools(self) -> List[SDKTool]:
        return list(self._tools.values())

    def list_tools(self) -> List[Dict[str, Any]]:
        """Tool metadata, as ``tools/list`` reports it."""
        return [t.definition() for t in self._tools.values()]

    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Invoke a tool directly, bypassing JSON-RPC framing.

        Handler exceptions propagate to the caller.

        Raises:
            ToolNotFoundError: If no tool has the given name.
        """
        sdk_tool = self._tools.get(name)
        if sdk_tool is None:
            raise ToolNotFoundError(name)
        return sdk_tool.invoke(arguments or {})

    # ==================== JSON-RPC ====================

    def handle_jsonrpc(self, message: JSONRPCMessage) -> JSONRPCResponse:
        """Handle one JSON-RPC message from the CLI and build its response."""
        handler = self._handlers.get(message.method or "")
        if handler is None:
            return JSONRPCResponse.failure(
                message.id,
                JSONRPCErrorCode.METHOD_NOT_FOUND,
                f"Method not found: {message.method}",
            )
        return handler(message)

    def _handle_initialize(self, message: JSONRPCMessage) -> JSONRPCResponse:
        return JSONRPCResponse.success(message.id, {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.name, "version": self.version},
        })

    def _handle_initialized(self, message: JSONRPCMessage) -> JSONRPCResponse:
        # Notification: acknowledged with an empty envelope
        return JSONRPCResponse(id=message.id)

    def _handle_ping(self, message: JSONRPCMessage) -> JSONRPCResponse:
        return JSONRPCResponse.success(message.id, {})

    def _handle_list_tools(self, message: JSONRPCMessage) -> JSONRPCResponse:
        return JSONRPCResponse.success(message.id, {"tools": self.list_tools()})

    def _handle_call_tool(self, message: JSONRPCMessage) -> JSONRPCResponse:
        params = message.params
        if params is None:
            return JSONRPCResponse.failure(
                message.id, JSONRPCErrorCode.INVALID_PARAMS, "Missing params for tools/call"
            )

        tool_name = params.get("name")
        if not isinstance(tool_name, str):
            return JSONRPCResponse.failure(
                message.id, JSONRPCErrorCode.INVALID_PARAMS, "Missing tool name in params"
            )

        arguments = params.get("arguments")
        if not isinstance(arguments, dict):
            arguments = {}

        sdk_tool = self._tools.get(tool_name)
        if sdk_tool is None:
            return JSONRPCResponse.failure(
                message.id, JSONRPCErrorCode.INVALID_PARAMS, f"Unknown tool: {tool_name}"
            )

        try:
            result = sdk_tool.invoke(arguments)
        except Exception as e:
            # Handler failures are tool-level errors, never JSON-RPC errors
            logger.warning(f"Tool '{tool_name}' on server '{self.name}' raised: {e}")
            result = ToolResult.error(f"Error: {e}")

        return JSONRPCResponse.success(message.id, result.to_dict())


def create_sdk_mcp_server(
    name: str,
    version: str = "1.0.0",
    tools: Optional[List[SDKTool]] = None,
) -> SDKMCPServer:
    """Create an in-process tool server for ``AgentOptions.mcp_servers``."""
    return SDKMCPServer(name=name, version=version, tools=tools)
