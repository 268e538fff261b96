"""Pytest fixtures for claude_bridge tests."""

import json
import os
import stat
import sys
import textwrap
from typing import Any, Dict, List, Optional

import pytest

from ..control import ControlResponse
from ..types import Message, parse_message


class FakeTransport:
    """In-memory stand-in for SubprocessCLITransport.

    Inbound messages are queued with ``feed``; everything the session
    writes lands in ``sent`` as plain dicts.
    """

    def __init__(self, session_id: Optional[str] = "s1"):
        self.session_id = session_id
        self.sent: List[Dict[str, Any]] = []
        self.inbound: List[Message] = []
        self.started = False
        self.stopped = False
        self.at_eof = False

    def feed(self, *messages: Dict[str, Any]) -> None:
        for data in messages:
            self.inbound.append(parse_message(data))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def send(self, message: Dict[str, Any]) -> None:
        # Round-trip through JSON so tests see exactly what hits the wire
        self.sent.append(json.loads(json.dumps(message)))

    def send_control_response(self, response: ControlResponse) -> None:
        self.send(response.to_dict())

    def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        if self.inbound:
            return self.inbound.pop(0)
        self.at_eof = True
        return None

    def exit_error(self):
        return None

    def sent_of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]


@pytest.fixture
def fake_transport():
    return FakeTransport()


FAKE_CLI_BODY = '''
import json
import os
import sys

SESSION = "fake-session"


def emit(obj):
    sys.stdout.write(json.dumps(obj) + "\\n")
    sys.stdout.flush()


args_file = os.environ.get("FAKE_CLI_ARGS_FILE")
if args_file:
    with open(args_file, "w") as f:
        json.dump({
            "argv": sys.argv[1:],
            "entrypoint": os.environ.get("CLAUDE_CODE_ENTRYPOINT"),
            "thinking": os.environ.get("MAX_THINKING_TOKENS"),
        }, f)

sys.stderr.write("fake cli starting\\n")
sys.stderr.flush()

emit({"type": "system", "subtype": "init", "session_id": SESSION})
sys.stdout.write("this is not json\\n")
sys.stdout.write("\\n")
sys.stdout.flush()

turn = 0
while True:
    line = sys.stdin.readline()
    if not line:
        break
    line = line.strip()
    if not line:
        continue
    msg = json.loads(line)

    if msg.get("type") == "control_request":
        emit({"type": "control_response",
              "response": {"subtype": "success", "request_id": msg.get("request_id", "init")}})
        continue

    if msg.get("type") != "user":
        continue

    turn += 1
    content = msg["message"]["content"]
    if content == "use tool":
        emit({"type": "control_request", "request_id": "req-1", "request": {
            "subtype": "mcp_message",
            "server_name": "calc",
            "message": {"jsonrpc": "2.0", "id": 1, "method": "tools/call",
                        "params": {"name": "add", "arguments": {"a": 2, "b": 3}}},
        }})
        reply = json.loads(sys.stdin.readline())
        text = reply["response"]["mcp_response"]["result"]["content"][0]["text"]
        content = "tool said " + text

    emit({"type": "assistant", "uuid": "a%d" % turn, "session_id": SESSION,
          "message": {"content": [{"type": "text", "text": "echo: " + content}]}})
    emit({"type": "result", "subtype": "success", "uuid": "r%d" % turn,
          "session_id": SESSION, "result": "echo: " + content, "num_turns": turn})
'''


@pytest.fixture
def fake_cli(tmp_path):
    """Path to an executable script speaking the stream-json protocol.

    It announces a session, emits one malformed line, echoes each user
    message back as an assistant message plus a result, and exits when
    stdin closes. The prompt "use tool" makes it call ``add`` on the
    ``calc`` in-process server first.
    """
    script = tmp_path / "fake-claude"
    script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(FAKE_CLI_BODY))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove CLAUDE_BRIDGE_* variables so tests see the defaults."""
    for name in list(os.environ):
        if name.startswith("CLAUDE_BRIDGE_"):
            monkeypatch.delenv(name, raising=False)
