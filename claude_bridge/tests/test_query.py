"""End-to-end tests through the fake CLI, plus option and permission helpers."""

import stat
import sys

import pytest

from ..errors import BridgeError, ConfigurationError
from ..hooks import HookConfig, HookEvent
from ..options import AgentOptions, ExternalMCPServerConfig
from ..permissions import (
    AddRulesUpdate,
    PermissionBehavior,
    PermissionMode,
    PermissionResult,
    PermissionRuleValue,
    SetModeUpdate,
)
from ..query import ask, query
from ..session import AgentSession
from ..tool_server import create_sdk_mcp_server
from ..tools import ToolResult, tool
from ..types import AssistantMessage, ResultMessage, SystemMessage


@tool("add", "Add two integers", {"a": int, "b": int})
def add_tool(args):
    return ToolResult.text(str(args["a"] + args["b"]))


class TestEndToEnd:
    """Full sessions against the fake CLI process."""

    def test_query_yields_turn(self, fake_cli, clean_env):
        messages = list(query("hello", AgentOptions(cli_path=fake_cli)))
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[-1], ResultMessage)
        assert messages[-2].text == "echo: hello"

    def test_ask_returns_result(self, fake_cli, clean_env):
        seen = []
        result = ask("hello", AgentOptions(cli_path=fake_cli), on_message=seen.append)
        assert result.result == "echo: hello"
        assert result.session_id == "fake-session"
        assert seen[-1] is result

    def test_in_process_tool_call(self, fake_cli, clean_env):
        calc = create_sdk_mcp_server("calc", tools=[add_tool])
        options = AgentOptions(cli_path=fake_cli, mcp_servers={"calc": calc})
        result = ask("use tool", options)
        assert result.result == "echo: tool said 5"

    def test_multi_turn_session(self, fake_cli, clean_env):
        hooks = HookConfig()
        stops = []
        hooks.on(HookEvent.STOP, lambda i, t, c: stops.append(t))

        with AgentSession(AgentOptions(cli_path=fake_cli, hooks=hooks)) as session:
            session.query("one")
            first = [m for m in session.each_response() if isinstance(m, AssistantMessage)]
            session.query("two")
            second = [m for m in session.each_response() if isinstance(m, AssistantMessage)]
            assert session.session_id == "fake-session"

        assert first[0].text == "echo: one"
        assert second[0].text == "echo: two"
        assert stops == ["r1", "r2"]

    def test_ask_without_result(self, tmp_path, clean_env):
        script = tmp_path / "silent-claude"
        script.write_text(f"#!{sys.executable}\nimport sys\nsys.stdin.readline()\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)

        with pytest.raises(BridgeError, match="without a result"):
            ask("hello", AgentOptions(cli_path=str(script), close_timeout=1))


class TestPermissionResult:
    """Tests for permission decisions and their control payloads."""

    def test_allow_payload(self):
        assert PermissionResult.allow().to_control_payload() == {"behavior": "allow"}

    def test_allow_with_updated_input(self):
        payload = PermissionResult.allow(updated_input={"command": "ls -la"}).to_control_payload()
        assert payload["updatedInput"] == {"command": "ls -la"}

    def test_deny_carries_message(self):
        payload = PermissionResult.deny("no network").to_control_payload()
        assert payload["behavior"] == "deny"
        assert payload["message"] == "no network"

    def test_coerce(self):
        assert PermissionResult.coerce(True).is_allowed is True
        assert PermissionResult.coerce(False).is_denied is True
        with pytest.raises(TypeError):
            PermissionResult.coerce("yes")

    def test_rule_update_serialization(self):
        update = AddRulesUpdate(rules=[PermissionRuleValue("Bash", "npm test")],
                                behavior=PermissionBehavior.ALLOW)
        assert update.to_dict() == {
            "type": "addRules",
            "rules": [{"toolName": "Bash", "ruleContent": "npm test"}],
            "behavior": "allow",
            "destination": "session",
        }

    def test_set_mode_update(self):
        assert SetModeUpdate(mode=PermissionMode.PLAN).to_dict() == {
            "type": "setMode", "mode": "plan", "destination": "session",
        }

    def test_mode_parse_aliases(self):
        assert PermissionMode.parse("accept-edits") == PermissionMode.ACCEPT_EDITS
        assert PermissionMode.parse("BYPASSPERMISSIONS") == PermissionMode.BYPASS_PERMISSIONS
        with pytest.raises(ConfigurationError):
            PermissionMode.parse("sudo")


class TestOptions:
    """Tests for AgentOptions helpers."""

    def test_server_split(self):
        calc = create_sdk_mcp_server("calc")
        files = ExternalMCPServerConfig.stdio("mcp-files")
        options = AgentOptions(mcp_servers={"calc": calc, "files": files})
        assert options.sdk_mcp_servers == {"calc": calc}
        assert options.external_mcp_servers == {"files": files}

    def test_sse_server(self):
        assert ExternalMCPServerConfig.sse("https://x/sse", {"Auth": "t"}).to_dict() == {
            "type": "sse", "url": "https://x/sse", "headers": {"Auth": "t"},
        }
