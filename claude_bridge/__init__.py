"""Claude CLI stream-json bridge.

Drives the Claude Code CLI over its stream-json protocol (one JSON object
per line on stdin/stdout) and exposes it as a typed, event-driven API:

- Typed messages decoded from every line the CLI emits
- In-process tool servers the CLI can call mid-turn
- Hooks and a permission callback that observe or veto tool use

Configuration:
    Environment variables:
        CLAUDE_BRIDGE_CLI_PATH: Path to claude CLI (default: "claude" on PATH)
        CLAUDE_BRIDGE_PERMISSION_MODE: default, acceptEdits, plan or bypassPermissions
        CLAUDE_BRIDGE_MAX_TURNS: Maximum agentic turns (default: unlimited)
        CLAUDE_BRIDGE_QUEUE_SIZE: Inbound message queue bound (default: 100)
        CLAUDE_BRIDGE_TRACE_LOG: File to append raw wire lines to (default: off)

    AgentOptions fields override the environment.

Example:
    from claude_bridge import (
        AgentOptions, AgentSession, AssistantMessage, ToolResult,
        create_sdk_mcp_server, tool,
    )

    @tool("add", "Add two numbers", {"a": float, "b": float})
    def add(args):
        return ToolResult.text(str(args["a"] + args["b"]))

    options = AgentOptions(
        mcp_servers={"calc": create_sdk_mcp_server("calc", tools=[add])},
        allowed_tools=["mcp__calc__add"],
    )

    with AgentSession(options) as session:
        session.query("What is 2 + 3?")
        for message in session.each_response():
            if isinstance(message, AssistantMessage):
                print(message.text)
"""

from .bridge import ControlBridge
from .control import (
    ControlHookCallbackRequest,
    ControlInitializeRequest,
    ControlInterruptRequest,
    ControlMcpMessageRequest,
    ControlPermissionRequest,
    ControlResponse,
    ControlRewindFilesRequest,
    ControlSetPermissionModeRequest,
    JSONRPCErrorCode,
    JSONRPCMessage,
    JSONRPCResponse,
    MalformedControlRequest,
    UnknownControlRequest,
)
from .env import load_env_file, resolve_cli_path, resolve_permission_mode
from .errors import (
    BridgeError,
    CLIConnectionError,
    ConfigurationError,
    ProcessError,
    ProcessNotFoundError,
    ProtocolDecodeError,
    SessionStateError,
    ToolNotFoundError,
    UnknownControlSubtypeError,
)
from .hooks import (
    HookConfig,
    HookContext,
    HookEvent,
    HookInput,
    HookMatcher,
    HookResult,
    HookSpecificOutput,
)
from .options import AgentDefinition, AgentOptions, ExternalMCPServerConfig, OutputFormat
from .permissions import (
    AddDirectoriesUpdate,
    AddRulesUpdate,
    PermissionBehavior,
    PermissionContext,
    PermissionMode,
    PermissionResult,
    PermissionRuleValue,
    PermissionUpdateDestination,
    RemoveDirectoriesUpdate,
    RemoveRulesUpdate,
    ReplaceRulesUpdate,
    SetModeUpdate,
)
from .pipeline import HookPipeline
from .query import ask, query
from .session import AgentSession, SessionState
from .tool_server import SDKMCPServer, create_sdk_mcp_server
from .tools import SDKTool, ToolResult, ToolResultContent, tool
from .transport import SubprocessCLITransport
from .types import (
    AssistantMessage,
    AssistantMessageError,
    ContentBlockType,
    ControlRequest,
    ControlResponseMessage,
    MessageType,
    PermissionRequest,
    RedactedThinkingBlock,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UnknownBlock,
    Usage,
    UserMessage,
    UserQuestion,
    decode,
    parse_message,
)

__version__ = "0.1.0"

__all__ = [
    # Session
    "AgentSession",
    "SessionState",
    "AgentOptions",
    "AgentDefinition",
    "ExternalMCPServerConfig",
    "OutputFormat",
    "query",
    "ask",
    # Messages
    "MessageType",
    "ContentBlockType",
    "AssistantMessage",
    "AssistantMessageError",
    "UserMessage",
    "SystemMessage",
    "ResultMessage",
    "Usage",
    "PermissionRequest",
    "UserQuestion",
    "StreamEvent",
    "ControlRequest",
    "ControlResponseMessage",
    "TextBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ThinkingBlock",
    "RedactedThinkingBlock",
    "UnknownBlock",
    "decode",
    "parse_message",
    # Control protocol
    "ControlBridge",
    "ControlResponse",
    "ControlInitializeRequest",
    "ControlMcpMessageRequest",
    "ControlPermissionRequest",
    "ControlInterruptRequest",
    "ControlSetPermissionModeRequest",
    "ControlHookCallbackRequest",
    "ControlRewindFilesRequest",
    "MalformedControlRequest",
    "UnknownControlRequest",
    "JSONRPCMessage",
    "JSONRPCResponse",
    "JSONRPCErrorCode",
    # Tools
    "SDKTool",
    "ToolResult",
    "ToolResultContent",
    "tool",
    "SDKMCPServer",
    "create_sdk_mcp_server",
    # Hooks and permissions
    "HookPipeline",
    "HookConfig",
    "HookContext",
    "HookEvent",
    "HookInput",
    "HookMatcher",
    "HookResult",
    "HookSpecificOutput",
    "PermissionMode",
    "PermissionBehavior",
    "PermissionContext",
    "PermissionResult",
    "PermissionRuleValue",
    "PermissionUpdateDestination",
    "AddRulesUpdate",
    "ReplaceRulesUpdate",
    "RemoveRulesUpdate",
    "SetModeUpdate",
    "AddDirectoriesUpdate",
    "RemoveDirectoriesUpdate",
    # Transport
    "SubprocessCLITransport",
    # Errors
    "BridgeError",
    "ProcessNotFoundError",
    "CLIConnectionError",
    "ProcessError",
    "ProtocolDecodeError",
    "UnknownControlSubtypeError",
    "ToolNotFoundError",
    "SessionStateError",
    "ConfigurationError",
    # Environment
    "load_env_file",
    "resolve_cli_path",
    "resolve_permission_mode",
]
