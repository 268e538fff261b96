"""Tests for the subprocess transport.

Process tests run the ``fake_cli`` script from conftest, which speaks
enough of the stream-json protocol to exercise the pipes end to end.
"""

import json
import logging
import stat
import sys

import pytest

from ..control import ControlResponse
from ..errors import CLIConnectionError, ProcessNotFoundError
from ..options import AgentDefinition, AgentOptions, ExternalMCPServerConfig, OutputFormat
from ..tool_server import create_sdk_mcp_server
from ..transport import BASE_CLI_ARGS, SubprocessCLITransport, build_cli_args, build_process_env
from ..types import AssistantMessage, ControlResponseMessage, ResultMessage, SystemMessage


@pytest.fixture
def transport(fake_cli, clean_env):
    t = SubprocessCLITransport(AgentOptions(cli_path=fake_cli))
    t.start()
    yield t
    t.stop()


def _user(content):
    return {"type": "user", "message": {"role": "user", "content": content}}


class TestBuildCliArgs:
    """Tests for CLI command-line construction."""

    def test_baseline(self, clean_env):
        assert build_cli_args(AgentOptions(), "/bin/claude") == ["/bin/claude"] + BASE_CLI_ARGS

    def test_verbose_precedes_output_format(self, clean_env):
        args = build_cli_args(AgentOptions(), "claude")
        assert args.index("--verbose") < args.index("--output-format")

    def test_options_become_flags(self, clean_env):
        options = AgentOptions(
            model="sonnet",
            permission_mode="accept_edits",
            max_turns=3,
            allowed_tools=["Read", "Write"],
            add_dirs=["/a", "/b"],
            resume="sess-1",
            include_partial_messages=True,
            setting_sources=["user", "project"],
        )
        args = build_cli_args(options, "claude")

        def value(flag):
            return args[args.index(flag) + 1]

        assert value("--model") == "sonnet"
        assert value("--permission-mode") == "acceptEdits"
        assert value("--max-turns") == "3"
        assert value("--allowedTools") == "Read Write"
        assert value("--resume") == "sess-1"
        assert value("--setting-sources") == "user,project"
        assert args.count("--add-dir") == 2
        assert "--include-partial-messages" in args
        assert "--continue" not in args

    def test_max_turns_from_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("CLAUDE_BRIDGE_MAX_TURNS", "7")
        args = build_cli_args(AgentOptions(), "claude")
        assert args[args.index("--max-turns") + 1] == "7"

    def test_only_external_servers_in_mcp_config(self, clean_env):
        options = AgentOptions(mcp_servers={
            "calc": create_sdk_mcp_server("calc"),
            "files": ExternalMCPServerConfig.stdio("mcp-files", args=["--root", "/"]),
            "web": ExternalMCPServerConfig.http("https://example.com/mcp"),
        })
        args = build_cli_args(options, "claude")
        config = json.loads(args[args.index("--mcp-config") + 1])
        assert config == {"mcpServers": {
            "files": {"command": "mcp-files", "args": ["--root", "/"]},
            "web": {"type": "http", "url": "https://example.com/mcp"},
        }}

    def test_no_mcp_config_for_sdk_servers_only(self, clean_env):
        options = AgentOptions(mcp_servers={"calc": create_sdk_mcp_server("calc")})
        assert "--mcp-config" not in build_cli_args(options, "claude")

    def test_agents_and_schema(self, clean_env):
        options = AgentOptions(
            agents={"reviewer": AgentDefinition("Reviews code", "You review.", tools=["Read"])},
            output_format=OutputFormat.json_schema(
                {"type": "object", "properties": {"ok": {"type": "boolean"}}},
                name="Verdict",
            ),
        )
        args = build_cli_args(options, "claude")
        agents = json.loads(args[args.index("--agents") + 1])
        assert agents["reviewer"] == {
            "description": "Reviews code", "prompt": "You review.", "tools": ["Read"],
        }
        schema = json.loads(args[args.index("--json-schema") + 1])
        assert schema["title"] == "Verdict"

    def test_text_output_format_adds_no_schema(self, clean_env):
        args = build_cli_args(AgentOptions(output_format=OutputFormat.text()), "claude")
        assert "--json-schema" not in args


class TestBuildProcessEnv:
    """Tests for the CLI process environment."""

    def test_entrypoint_and_overrides(self, monkeypatch):
        monkeypatch.setenv("FROM_PARENT", "1")
        env = build_process_env(AgentOptions(env={"EXTRA": "x"}, max_thinking_tokens=2048,
                                             user="ada"))
        assert env["CLAUDE_CODE_ENTRYPOINT"] == "sdk-py"
        assert env["FROM_PARENT"] == "1"
        assert env["EXTRA"] == "x"
        assert env["MAX_THINKING_TOKENS"] == "2048"
        assert env["CLAUDE_CODE_USER"] == "ada"

    def test_entrypoint_cannot_be_overridden(self):
        env = build_process_env(AgentOptions(env={"CLAUDE_CODE_ENTRYPOINT": "other"}))
        assert env["CLAUDE_CODE_ENTRYPOINT"] == "sdk-py"


class TestSubprocessTransport:
    """Tests against a live fake CLI process."""

    def test_session_id_and_malformed_line(self, transport, caplog):
        with caplog.at_level(logging.WARNING, logger="claude_bridge.transport"):
            first = transport.receive(timeout=5)
            assert isinstance(first, SystemMessage)
            assert transport.session_id == "fake-session"

            transport.send(_user("hi"))
            assistant = transport.receive(timeout=5)
        assert isinstance(assistant, AssistantMessage)
        assert assistant.text == "echo: hi"
        assert "Skipping undecodable line" in caplog.text

    def test_turn_round_trip(self, transport):
        transport.receive(timeout=5)
        transport.send(_user("one"))
        assert transport.receive(timeout=5).text == "echo: one"
        result = transport.receive(timeout=5)
        assert isinstance(result, ResultMessage)
        assert result.num_turns == 1

    def test_control_round_trip(self, transport):
        transport.receive(timeout=5)
        transport.send({"type": "control_request", "request_id": "req_abc",
                        "request": {"subtype": "set_permission_mode", "mode": "plan"}})
        response = transport.receive(timeout=5)
        assert isinstance(response, ControlResponseMessage)
        assert response.request_id == "req_abc"

    def test_send_control_response(self, transport):
        transport.receive(timeout=5)
        transport.send_control_response(ControlResponse.success("x"))
        transport.send(_user("still alive"))
        assert transport.receive(timeout=5).text == "echo: still alive"

    def test_receive_timeout(self, transport):
        transport.receive(timeout=5)
        assert transport.receive(timeout=0.1) is None
        assert transport.at_eof is False

    def test_stop_then_send(self, transport):
        transport.stop()
        assert transport.is_running is False
        assert transport.returncode == 0
        assert transport.exit_error() is None
        with pytest.raises(CLIConnectionError):
            transport.send(_user("too late"))

    def test_stop_is_idempotent(self, transport):
        transport.stop()
        transport.stop()
        assert transport.at_eof is True

    def test_start_twice(self, transport):
        with pytest.raises(CLIConnectionError):
            transport.start()

    def test_stderr_callback(self, fake_cli, clean_env):
        lines = []
        t = SubprocessCLITransport(AgentOptions(cli_path=fake_cli, stderr=lines.append))
        t.start()
        t.receive(timeout=5)
        t.stop()
        assert "fake cli starting" in lines
        assert "fake cli starting" in t.stderr_tail

    def test_args_and_env_reach_process(self, fake_cli, clean_env, tmp_path):
        args_file = tmp_path / "args.json"
        options = AgentOptions(cli_path=fake_cli, model="opus", max_thinking_tokens=500,
                               env={"FAKE_CLI_ARGS_FILE": str(args_file)})
        t = SubprocessCLITransport(options)
        t.start()
        t.receive(timeout=5)
        t.stop()

        seen = json.loads(args_file.read_text())
        assert seen["argv"][:len(BASE_CLI_ARGS)] == BASE_CLI_ARGS
        assert seen["argv"][seen["argv"].index("--model") + 1] == "opus"
        assert seen["entrypoint"] == "sdk-py"
        assert seen["thinking"] == "500"

    def test_failed_exit(self, tmp_path, clean_env):
        script = tmp_path / "failing-claude"
        script.write_text(f"#!{sys.executable}\n"
                          "import sys\n"
                          "sys.stderr.write('auth failed\\n')\n"
                          "sys.exit(3)\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)

        t = SubprocessCLITransport(AgentOptions(cli_path=str(script)))
        t.start()
        assert t.receive(timeout=5) is None
        assert t.at_eof is True
        t.stop()

        error = t.exit_error()
        assert error.exit_code == 3
        assert "auth failed" in error.stderr

    def test_invalid_utf8_does_not_end_stream(self, tmp_path, clean_env):
        script = tmp_path / "noisy-claude"
        script.write_text(f"#!{sys.executable}\n"
                          "import sys\n"
                          "out = sys.stdout.buffer\n"
                          "out.write(b'{\"type\":\"system\",\"subtype\":\"init\",\"session_id\":\"x\"}\\n')\n"
                          "out.write(b'\\xff\\xfe garbage\\n')\n"
                          "out.write(b'{\"type\":\"result\",\"subtype\":\"success\",\"uuid\":\"r1\",\"session_id\":\"x\",\"result\":\"caf\\xe9\"}\\n')\n"
                          "out.flush()\n"
                          "sys.stdin.readline()\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)

        t = SubprocessCLITransport(AgentOptions(cli_path=str(script)))
        t.start()
        assert isinstance(t.receive(timeout=5), SystemMessage)
        result = t.receive(timeout=5)
        assert isinstance(result, ResultMessage)
        assert result.result == "caf\ufffd"
        t.stop()


class TestCliResolution:
    """Tests for locating the CLI binary."""

    def test_missing_explicit_path(self, tmp_path, clean_env):
        t = SubprocessCLITransport(AgentOptions(cli_path=str(tmp_path / "no-such-claude")))
        with pytest.raises(ProcessNotFoundError) as exc_info:
            t.start()
        assert exc_info.value.cli_path == str(tmp_path / "no-such-claude")

    def test_missing_binary_is_file_not_found(self, tmp_path, clean_env):
        t = SubprocessCLITransport(AgentOptions(cli_path=str(tmp_path / "absent")))
        with pytest.raises(FileNotFoundError):
            t.start()

    def test_non_executable_format(self, tmp_path, clean_env):
        binary = tmp_path / "corrupt-claude"
        binary.write_bytes(b"\x00\x01\x02 not a program")
        binary.chmod(binary.stat().st_mode | stat.S_IXUSR)

        t = SubprocessCLITransport(AgentOptions(cli_path=str(binary)))
        with pytest.raises(ProcessNotFoundError, match="could not be executed") as exc_info:
            t.start()
        assert exc_info.value.cli_path == str(binary)

    def test_send_before_start(self, clean_env):
        with pytest.raises(CLIConnectionError):
            SubprocessCLITransport(AgentOptions()).send(_user("hi"))
