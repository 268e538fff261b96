"""Custom exceptions for the Claude CLI bridge.

Provides descriptive error messages for the failure scenarios of a
stream-json session: missing binary, broken pipes, undecodable lines.
"""

from typing import Optional


class BridgeError(Exception):
    """Base exception for Claude CLI bridge errors."""

    pass


class ProcessNotFoundError(BridgeError, FileNotFoundError):
    """Raised when the Claude CLI executable cannot be located or executed."""

    def __init__(self, message: Optional[str] = None, cli_path: Optional[str] = None):
        self.cli_path = cli_path

        if message is None:
            message = "Claude Code CLI not found"
            if cli_path:
                message += f" at '{cli_path}'"
            message += (
                "\n\nTo fix this:\n"
                "  1. Install it: npm install -g @anthropic-ai/claude-code\n"
                "  2. Or set CLAUDE_BRIDGE_CLI_PATH to the full path"
            )
        super().__init__(message)


class CLIConnectionError(BridgeError, ConnectionError):
    """Raised when the pipe to the CLI process cannot be written or read."""

    pass


class ProcessError(BridgeError):
    """Raised when the CLI process exited with an error."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: Optional[str] = None):
        self.exit_code = exit_code
        self.stderr = stderr

        if exit_code is not None:
            message += f" (exit code {exit_code})"
        if stderr:
            message += f"\nstderr:\n{stderr}"
        super().__init__(message)


class ProtocolDecodeError(BridgeError, ValueError):
    """Raised when a wire line cannot be decoded into a message."""

    def __init__(self, message: str, raw_line: str = ""):
        self.raw_line = raw_line
        preview = raw_line if len(raw_line) <= 200 else raw_line[:200] + "..."
        super().__init__(f"{message}: {preview}" if raw_line else message)


class UnknownControlSubtypeError(BridgeError):
    """Raised when a control request carries a subtype this side cannot handle."""

    def __init__(self, subtype: Optional[str]):
        self.subtype = subtype
        super().__init__(f"Unknown control request subtype: {subtype}")


class ToolNotFoundError(BridgeError, KeyError):
    """Raised when a tool is invoked by a name no server registered."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool not found: {tool_name}")

    def __str__(self) -> str:
        return self.args[0]


class SessionStateError(BridgeError, RuntimeError):
    """Raised when a session operation is called in the wrong lifecycle state."""

    pass


class ConfigurationError(BridgeError, ValueError):
    """Raised for invalid option or environment values."""

    pass
