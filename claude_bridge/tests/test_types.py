"""Tests for stream-json message decoding."""

import json

import pytest

from ..control import ControlMcpMessageRequest, MalformedControlRequest, UnknownControlRequest
from ..errors import ProtocolDecodeError
from ..types import (
    AssistantMessage,
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
    UserMessage,
    UserQuestion,
    decode,
    parse_content_block,
    parse_message,
    parse_ndjson_line,
)


def _assistant(content, **extra):
    data = {"type": "assistant", "uuid": "a1", "session_id": "s1",
            "message": {"content": content}}
    data.update(extra)
    return data


class TestDecodeDispatch:
    """Tests for top-level message dispatch."""

    def test_result_success(self):
        msg = decode('{"type":"result","subtype":"success","uuid":"r1","session_id":"s1"}')
        assert isinstance(msg, ResultMessage)
        assert msg.is_success is True
        assert msg.type == MessageType.RESULT

    def test_result_error_subtype_is_not_success(self):
        msg = decode('{"type":"result","subtype":"error_max_turns","uuid":"r1","session_id":"s1"}')
        assert msg.is_success is False

    def test_system_message(self):
        msg = decode(json.dumps({
            "type": "system", "subtype": "init", "session_id": "s1",
            "cwd": "/work", "model": "sonnet", "tools": ["Bash"],
            "permissionMode": "default", "apiKeySource": "none",
        }))
        assert isinstance(msg, SystemMessage)
        assert msg.subtype == "init"
        assert msg.tools == ["Bash"]
        assert msg.permission_mode == "default"

    def test_permission_request(self):
        msg = decode(json.dumps({
            "type": "permission_request", "tool_use_id": "t1",
            "tool_name": "Bash", "tool_input": {"command": "ls"},
        }))
        assert isinstance(msg, PermissionRequest)
        assert msg.tool_input == {"command": "ls"}

    def test_user_question(self):
        msg = decode('{"type":"user_question","uuid":"q1","message":"Which file?"}')
        assert isinstance(msg, UserQuestion)
        assert msg.message == "Which file?"

    def test_control_request_with_mcp_message(self):
        msg = decode(json.dumps({
            "type": "control_request", "request_id": "req-1",
            "request": {
                "subtype": "mcp_message", "server_name": "calc",
                "message": {"jsonrpc": "2.0", "id": 7, "method": "tools/list"},
            },
        }))
        assert isinstance(msg, ControlRequest)
        assert isinstance(msg.request, ControlMcpMessageRequest)
        assert msg.request.message.method == "tools/list"
        assert msg.request.message.id == 7

    def test_control_request_with_unknown_subtype_is_kept(self):
        msg = decode(json.dumps({
            "type": "control_request", "request_id": "req-2",
            "request": {"subtype": "brand_new", "x": 1},
        }))
        assert isinstance(msg.request, UnknownControlRequest)
        assert msg.request.subtype == "brand_new"
        assert msg.request_id == "req-2"

    def test_control_request_with_malformed_body_keeps_request_id(self):
        msg = decode(json.dumps({
            "type": "control_request", "request_id": "req-3",
            "request": {"subtype": "mcp_message", "message": {}},
        }))
        assert isinstance(msg, ControlRequest)
        assert msg.request_id == "req-3"
        assert isinstance(msg.request, MalformedControlRequest)
        assert msg.request.subtype == "mcp_message"
        assert "server_name" in msg.request.error

    def test_control_response_message(self):
        msg = decode('{"type":"control_response","response":{"subtype":"success","request_id":"r"}}')
        assert isinstance(msg, ControlResponseMessage)
        assert msg.request_id == "r"

    def test_ndjson_alias(self):
        assert parse_ndjson_line is decode


class TestDecodeErrors:
    """Tests for protocol decode failures."""

    def test_missing_type(self):
        with pytest.raises(ProtocolDecodeError) as exc_info:
            decode('{"uuid":"x"}')
        assert exc_info.value.raw_line == '{"uuid":"x"}'

    def test_unknown_type_is_an_error(self):
        line = '{"type":"telemetry","uuid":"x"}'
        with pytest.raises(ProtocolDecodeError, match="Unknown message type"):
            decode(line)

    def test_invalid_json(self):
        with pytest.raises(ProtocolDecodeError) as exc_info:
            decode("not json")
        assert exc_info.value.raw_line == "not json"

    def test_non_object(self):
        with pytest.raises(ProtocolDecodeError):
            decode("[1, 2]")

    def test_missing_required_field(self):
        with pytest.raises(ProtocolDecodeError, match="session_id"):
            decode('{"type":"result","subtype":"success","uuid":"r1"}')

    def test_mistyped_field(self):
        with pytest.raises(ProtocolDecodeError, match="duration_ms"):
            decode(json.dumps({"type": "result", "subtype": "success", "uuid": "r1",
                               "session_id": "s1", "duration_ms": "slow"}))

    def test_long_line_is_truncated_in_message(self):
        line = json.dumps({"type": "nope", "pad": "x" * 500})
        with pytest.raises(ProtocolDecodeError) as exc_info:
            decode(line)
        assert exc_info.value.raw_line == line
        assert len(str(exc_info.value)) < 300


class TestContentBlocks:
    """Tests for content blocks inside assistant messages."""

    def test_all_known_blocks(self):
        msg = parse_message(_assistant([
            {"type": "text", "text": "hi"},
            {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
            {"type": "tool_result", "tool_use_id": "t1", "content": "ok", "is_error": False},
            {"type": "thinking", "thinking": "hmm", "signature": "sig"},
            {"type": "redacted_thinking", "data": "opaque"},
        ]))
        assert [type(b) for b in msg.content] == [
            TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock, RedactedThinkingBlock,
        ]

    def test_unknown_block_does_not_fail_message(self):
        raw = {"type": "server_tool_use", "id": "x", "payload": [1, 2]}
        msg = parse_message(_assistant([{"type": "text", "text": "a"}, raw]))
        block = msg.content[1]
        assert isinstance(block, UnknownBlock)
        assert block.type == "server_tool_use"
        assert json.loads(block.raw_json) == raw
        assert block.to_dict() == raw

    def test_tool_result_list_content(self):
        block = parse_content_block({
            "type": "tool_result", "tool_use_id": "t1",
            "content": [{"type": "text", "text": "x"}], "is_error": True,
        })
        assert block.failed is True
        assert json.loads(block.content_text) == [{"type": "text", "text": "x"}]

    def test_tool_result_without_content(self):
        block = parse_content_block({"type": "tool_result", "tool_use_id": "t1"})
        assert block.content is None
        assert block.is_error is None
        assert block.content_text == ""

    def test_block_missing_type(self):
        with pytest.raises(ProtocolDecodeError):
            parse_content_block({"text": "hi"})


class TestAssistantMessage:
    """Tests for AssistantMessage helpers."""

    def test_text_and_tool_uses(self):
        msg = parse_message(_assistant([
            {"type": "text", "text": "Hello "},
            {"type": "tool_use", "id": "t1", "name": "Read", "input": {}},
            {"type": "text", "text": "world"},
        ]))
        assert msg.text == "Hello world"
        assert msg.has_text is True
        assert [t.name for t in msg.tool_uses] == ["Read"]

    def test_direct_content_format(self):
        msg = parse_message({"type": "assistant", "uuid": "a1", "session_id": "s1",
                             "content": [{"type": "text", "text": "direct"}]})
        assert msg.text == "direct"

    def test_model_from_nested_message(self):
        data = _assistant([])
        data["message"]["model"] = "claude-sonnet"
        assert parse_message(data).model == "claude-sonnet"

    def test_string_error_is_normalized(self):
        msg = parse_message(_assistant([], error="rate_limit"))
        assert msg.error.type == "error"
        assert msg.error.message == "rate_limit"

    def test_object_error(self):
        msg = parse_message(_assistant([], error={"type": "overloaded", "message": "busy"}))
        assert msg.error.type == "overloaded"

    def test_subagent_flag(self):
        msg = parse_message(_assistant([], parent_tool_use_id="t9"))
        assert msg.from_subagent is True


class TestResultMessage:
    """Tests for ResultMessage fields and helpers."""

    def test_metrics_are_optional(self):
        msg = decode('{"type":"result","subtype":"success","uuid":"r1","session_id":"s1"}')
        assert msg.cost_usd is None
        assert msg.usage is None
        assert msg.num_turns is None

    def test_metrics(self):
        msg = parse_message({
            "type": "result", "subtype": "success", "uuid": "r1", "session_id": "s1",
            "total_cost_usd": 0.25, "duration_ms": 1200, "num_turns": 3,
            "usage": {"input_tokens": 10, "output_tokens": 5, "cache_read_input_tokens": 2},
        })
        assert msg.total_cost_usd == 0.25
        assert msg.usage.total_tokens == 15
        assert msg.usage.cache_read_input_tokens == 2
        assert msg.usage.cache_creation_input_tokens == 0

    def test_structured_output_dict(self):
        msg = parse_message({
            "type": "result", "subtype": "success", "uuid": "r1", "session_id": "s1",
            "structured_output": {"answer": 42},
        })
        assert msg.has_structured_output is True
        assert msg.get_output("answer") == 42
        assert msg.get_output("missing", "d") == "d"
        assert msg.structured_output_list is None

    def test_structured_output_list(self):
        msg = parse_message({
            "type": "result", "subtype": "success", "uuid": "r1", "session_id": "s1",
            "structured_output": [1, 2],
        })
        assert msg.structured_output_list == [1, 2]
        assert msg.get_output("x") is None


class TestStreamEvent:
    """Tests for StreamEvent helpers."""

    def test_text_delta(self):
        msg = parse_message({
            "type": "stream_event", "uuid": "e1", "session_id": "s1",
            "event": {"type": "content_block_delta",
                      "delta": {"type": "text_delta", "text": "Hel"}},
        })
        assert isinstance(msg, StreamEvent)
        assert msg.event_type == "content_block_delta"
        assert msg.is_text_delta is True
        assert msg.delta_text == "Hel"

    def test_non_delta_event(self):
        msg = parse_message({"type": "stream_event", "uuid": "e1", "session_id": "s1",
                             "event": {"type": "message_start"}})
        assert msg.is_text_delta is False
        assert msg.delta_text is None


class TestUserMessage:
    """Tests for UserMessage content access."""

    def test_string_content(self):
        msg = parse_message({"type": "user", "session_id": "s1",
                             "message": {"role": "user", "content": "hello"}})
        assert isinstance(msg, UserMessage)
        assert msg.content == "hello"

    def test_block_content(self):
        msg = parse_message({"type": "user", "session_id": "s1", "message": {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "done"}],
        }})
        assert isinstance(msg.content[0], ToolResultBlock)


class TestRoundTrip:
    """Re-encoding a decoded message keeps its meaningful fields."""

    @pytest.mark.parametrize("data", [
        {"type": "result", "subtype": "success", "uuid": "r1", "session_id": "s1",
         "result": "done", "total_cost_usd": 0.5, "num_turns": 2,
         "usage": {"input_tokens": 1, "output_tokens": 2,
                   "cache_read_input_tokens": 0, "cache_creation_input_tokens": 0}},
        {"type": "assistant", "uuid": "a1", "session_id": "s1", "message": {"content": [
            {"type": "text", "text": "hi"},
            {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
            {"type": "mystery", "blob": {"k": "v"}},
        ]}},
        {"type": "control_request", "request_id": "req-1",
         "request": {"subtype": "can_use_tool", "tool_name": "Bash",
                     "input": {"command": "ls"}, "tool_use_id": "t1"}},
        {"type": "permission_request", "tool_use_id": "t1", "tool_name": "Bash",
         "tool_input": {}},
    ])
    def test_decode_encode(self, data):
        msg = parse_message(data)
        assert parse_message(msg.to_dict()) == msg
