"""Session configuration."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .hooks import HookConfig
from .permissions import PermissionCallback, PermissionMode
from .tool_server import SDKMCPServer


@dataclass(frozen=True)
class ExternalMCPServerConfig:
    """An MCP server the CLI runs or connects to itself.

    Stdio servers have a ``command``; http/sse servers have a ``url``.
    """

    type: Optional[str] = None  # None means stdio
    command: Optional[str] = None
    args: Optional[List[str]] = None
    env: Optional[Dict[str, str]] = None
    url: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    @classmethod
    def stdio(
        cls,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> "ExternalMCPServerConfig":
        return cls(command=command, args=args, env=env)

    @classmethod
    def http(cls, url: str, headers: Optional[Dict[str, str]] = None) -> "ExternalMCPServerConfig":
        return cls(type="http", url=url, headers=headers)

    @classmethod
    def sse(cls, url: str, headers: Optional[Dict[str, str]] = None) -> "ExternalMCPServerConfig":
        return cls(type="sse", url=url, headers=headers)

    def to_dict(self) -> Dict[str, Any]:
        """Entry for the ``mcpServers`` map of ``--mcp-config``."""
        result: Dict[str, Any] = {}
        if self.type is not None:
            result["type"] = self.type
        if self.command is not None:
            result["command"] = self.command
        if self.args is not None:
            result["args"] = list(self.args)
        if self.env is not None:
            result["env"] = dict(self.env)
        if self.url is not None:
            result["url"] = self.url
        if self.headers is not None:
            result["headers"] = dict(self.headers)
        return result


MCPServerConfig = Union[SDKMCPServer, ExternalMCPServerConfig]


@dataclass(frozen=True)
class AgentDefinition:
    """A subagent the main agent can delegate to."""

    description: str
    prompt: str
    tools: Optional[List[str]] = None
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"description": self.description, "prompt": self.prompt}
        if self.tools is not None:
            result["tools"] = list(self.tools)
        if self.model is not None:
            result["model"] = self.model
        return result


@dataclass(frozen=True)
class OutputFormat:
    """Structured output request."""

    type: str  # "json_schema" or "text"
    schema: Optional[Dict[str, Any]] = None
    name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def json_schema(
        cls,
        schema: Dict[str, Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> "OutputFormat":
        return cls(type="json_schema", schema=schema, name=name, description=description)

    @classmethod
    def text(cls) -> "OutputFormat":
        return cls(type="text")

    def final_schema(self) -> Optional[Dict[str, Any]]:
        """Schema passed to ``--json-schema``, with name/description folded in."""
        if self.type != "json_schema" or self.schema is None:
            return None
        schema = dict(self.schema)
        if self.name is not None:
            schema["title"] = self.name
        if self.description is not None:
            schema["description"] = self.description
        return schema


@dataclass
class AgentOptions:
    """Configuration for an AgentSession.

    Unset fields leave the CLI's own defaults in place. ``cli_path``,
    ``permission_mode``, ``max_turns`` and ``queue_size`` fall back to
    environment variables (see ``claude_bridge.env``).

    Attributes:
        cli_path: Path to the claude executable.
        cwd: Working directory for the CLI process.
        env: Extra environment variables for the CLI process.
        permission_mode: CLI permission mode; ``bypassPermissions`` also
            short-circuits out-of-band permission requests to allow.
        mcp_servers: Name to in-process server or external server config.
            In-process servers are announced with an initialize control
            request; external ones go to ``--mcp-config``.
        hooks: Hook registrations.
        can_use_tool: Permission callback for tool use.
        stderr: Called with each line the CLI writes to stderr.
        queue_size: Bound of the inbound message queue.
        close_timeout: Seconds ``stop()`` waits for the process to exit
            before terminating it.
    """

    cli_path: Optional[str] = None
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)

    model: Optional[str] = None
    fallback_model: Optional[str] = None
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None

    permission_mode: Optional[Union[PermissionMode, str]] = None
    allow_dangerously_skip_permissions: bool = False
    max_turns: Optional[int] = None
    max_budget_usd: Optional[float] = None
    max_thinking_tokens: Optional[int] = None

    allowed_tools: Optional[List[str]] = None
    disallowed_tools: Optional[List[str]] = None
    add_dirs: Optional[List[str]] = None

    mcp_servers: Dict[str, MCPServerConfig] = field(default_factory=dict)
    strict_mcp_config: bool = False
    agents: Optional[Dict[str, AgentDefinition]] = None
    agent: Optional[str] = None
    output_format: Optional[OutputFormat] = None

    continue_conversation: bool = False
    resume: Optional[str] = None
    fork_session: bool = False
    session_id: Optional[str] = None
    include_partial_messages: bool = False
    replay_user_messages: bool = False
    setting_sources: Optional[List[str]] = None
    settings_path: Optional[str] = None
    betas: Optional[List[str]] = None
    user: Optional[str] = None

    hooks: Optional[HookConfig] = None
    can_use_tool: Optional[PermissionCallback] = None
    stderr: Optional[Callable[[str], None]] = None

    queue_size: Optional[int] = None
    close_timeout: float = 10.0

    @property
    def sdk_mcp_servers(self) -> Dict[str, SDKMCPServer]:
        return {n: s for n, s in self.mcp_servers.items() if isinstance(s, SDKMCPServer)}

    @property
    def external_mcp_servers(self) -> Dict[str, ExternalMCPServerConfig]:
        return {
            n: s for n, s in self.mcp_servers.items()
            if isinstance(s, ExternalMCPServerConfig)
        }
