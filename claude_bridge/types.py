"""Type definitions for the Claude CLI stream-json protocol.

These types mirror the NDJSON messages the Claude Code CLI emits when run
with ``--output-format stream-json --input-format stream-json``. Every line
decodes to exactly one message variant, selected by its ``type`` field.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .control import ControlRequestInner, MalformedControlRequest, parse_control_request_inner
from .errors import ProtocolDecodeError
from .wire import (
    load_object,
    optional_bool,
    optional_dict,
    optional_int,
    optional_list,
    optional_number,
    optional_str,
    require_dict,
    require_list,
    require_str,
)


class MessageType(str, Enum):
    """Types of messages in the stream-json protocol."""

    SYSTEM = "system"
    """Session initialization and other system notices."""

    ASSISTANT = "assistant"
    """Response from Claude."""

    USER = "user"
    """User input or tool results (replayed by the CLI)."""

    RESULT = "result"
    """Final result of a turn."""

    PERMISSION_REQUEST = "permission_request"
    """Out-of-band request for a human permission decision."""

    USER_QUESTION = "user_question"
    """Question addressed to the user."""

    STREAM_EVENT = "stream_event"
    """Partial message fragment (with --include-partial-messages)."""

    CONTROL_REQUEST = "control_request"
    """Side-channel request the CLI expects this side to answer."""

    CONTROL_RESPONSE = "control_response"
    """Acknowledgment of a control request this side sent."""


class ContentBlockType(str, Enum):
    """Types of content blocks within messages."""

    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    THINKING = "thinking"
    REDACTED_THINKING = "redacted_thinking"


# ==================== Content Blocks ====================


@dataclass(frozen=True)
class TextBlock:
    """Text content block."""

    text: str

    @property
    def type(self) -> str:
        return ContentBlockType.TEXT.value

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextBlock":
        return cls(text=require_str(data, "text", "text block"))


@dataclass(frozen=True)
class ToolUseBlock:
    """Tool invocation request block."""

    id: str
    name: str
    input: Dict[str, Any]

    @property
    def type(self) -> str:
        return ContentBlockType.TOOL_USE.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": self.input,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolUseBlock":
        context = "tool_use block"
        return cls(
            id=require_str(data, "id", context),
            name=require_str(data, "name", context),
            input=require_dict(data, "input", context),
        )


@dataclass(frozen=True)
class ToolResultBlock:
    """Tool execution result block."""

    tool_use_id: str
    content: Union[str, List[Dict[str, Any]], None] = None
    is_error: Optional[bool] = None

    @property
    def type(self) -> str:
        return ContentBlockType.TOOL_RESULT.value

    @property
    def failed(self) -> bool:
        return self.is_error is True

    @property
    def content_text(self) -> str:
        """Result content flattened to a string (lists are JSON-encoded)."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
        }
        if self.content is not None:
            result["content"] = self.content
        if self.is_error is not None:
            result["is_error"] = self.is_error
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolResultBlock":
        context = "tool_result block"
        content = data.get("content")
        if content is not None and not isinstance(content, (str, list)):
            raise ProtocolDecodeError(
                f"{context}: field 'content' must be a string or an array, "
                f"got {type(content).__name__}"
            )
        return cls(
            tool_use_id=require_str(data, "tool_use_id", context),
            content=content,
            is_error=optional_bool(data, "is_error", context),
        )


@dataclass(frozen=True)
class ThinkingBlock:
    """Extended thinking block; the signature is opaque."""

    thinking: str
    signature: str

    @property
    def type(self) -> str:
        return ContentBlockType.THINKING.value

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "thinking", "thinking": self.thinking, "signature": self.signature}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThinkingBlock":
        context = "thinking block"
        return cls(
            thinking=require_str(data, "thinking", context),
            signature=require_str(data, "signature", context),
        )


@dataclass(frozen=True)
class RedactedThinkingBlock:
    """Thinking block whose content was redacted; data is opaque."""

    data: str

    @property
    def type(self) -> str:
        return ContentBlockType.REDACTED_THINKING.value

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "redacted_thinking", "data": self.data}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RedactedThinkingBlock":
        return cls(data=require_str(data, "data", "redacted_thinking block"))


@dataclass(frozen=True)
class UnknownBlock:
    """Content block of a type this version does not know.

    The original object is kept so the block can be re-serialized unchanged.
    """

    block_type: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.block_type

    @property
    def raw_json(self) -> str:
        return json.dumps(self.raw)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


ContentBlock = Union[
    TextBlock,
    ToolUseBlock,
    ToolResultBlock,
    ThinkingBlock,
    RedactedThinkingBlock,
    UnknownBlock,
]


_BLOCK_PARSERS: Dict[str, Callable[[Dict[str, Any]], ContentBlock]] = {
    ContentBlockType.TEXT.value: TextBlock.from_dict,
    ContentBlockType.TOOL_USE.value: ToolUseBlock.from_dict,
    ContentBlockType.TOOL_RESULT.value: ToolResultBlock.from_dict,
    ContentBlockType.THINKING.value: ThinkingBlock.from_dict,
    ContentBlockType.REDACTED_THINKING.value: RedactedThinkingBlock.from_dict,
}


def parse_content_block(data: Any) -> ContentBlock:
    """Parse a content block from its dict representation."""
    if not isinstance(data, dict):
        raise ProtocolDecodeError(
            f"content block must be an object, got {type(data).__name__}"
        )
    block_type = require_str(data, "type", "content block")

    parser = _BLOCK_PARSERS.get(block_type)
    if parser is None:
        return UnknownBlock(block_type=block_type, raw=dict(data))
    return parser(data)


def parse_content_blocks(items: List[Any]) -> List[ContentBlock]:
    return [parse_content_block(item) for item in items]


# ==================== Messages ====================


@dataclass(frozen=True)
class AssistantMessageError:
    """Error attached to an assistant message."""

    type: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}

    @classmethod
    def from_value(cls, value: Any) -> Optional["AssistantMessageError"]:
        # The CLI sends either a bare string ("unknown") or a full object
        if value is None:
            return None
        if isinstance(value, str):
            return cls(type="error", message=value)
        if isinstance(value, dict):
            context = "assistant message error"
            return cls(
                type=require_str(value, "type", context),
                message=require_str(value, "message", context),
            )
        raise ProtocolDecodeError(
            f"assistant message: field 'error' must be a string or an object, "
            f"got {type(value).__name__}"
        )


@dataclass(frozen=True)
class AssistantMessage:
    """Response from Claude."""

    uuid: str
    session_id: str
    content: List[ContentBlock]
    model: Optional[str] = None
    error: Optional[AssistantMessageError] = None
    parent_tool_use_id: Optional[str] = None

    @property
    def type(self) -> MessageType:
        return MessageType.ASSISTANT

    @property
    def text(self) -> str:
        """Extract all text content from this message."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        """Extract all tool use blocks from this message."""
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> List[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    @property
    def has_text(self) -> bool:
        return any(isinstance(b, TextBlock) and b.text for b in self.content)

    @property
    def from_subagent(self) -> bool:
        return self.parent_tool_use_id is not None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": [b.to_dict() for b in self.content]}
        if self.model:
            body["model"] = self.model
        result: Dict[str, Any] = {
            "type": "assistant",
            "uuid": self.uuid,
            "session_id": self.session_id,
            "message": body,
        }
        if self.error:
            result["error"] = self.error.to_dict()
        if self.parent_tool_use_id:
            result["parent_tool_use_id"] = self.parent_tool_use_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssistantMessage":
        context = "assistant message"
        # Handle both formats:
        # 1. Nested message: {"type":"assistant","message":{"content":[...]}}
        # 2. Direct content: {"type":"assistant","content":[...]}
        if "message" in data:
            body = require_dict(data, "message", context)
            content_data = require_list(body, "content", context)
            model = optional_str(body, "model", context)
        else:
            content_data = require_list(data, "content", context)
            model = optional_str(data, "model", context)

        return cls(
            uuid=require_str(data, "uuid", context),
            session_id=require_str(data, "session_id", context),
            content=parse_content_blocks(content_data),
            model=model,
            error=AssistantMessageError.from_value(data.get("error")),
            parent_tool_use_id=optional_str(data, "parent_tool_use_id", context),
        )


@dataclass(frozen=True)
class UserMessage:
    """User input or tool results message."""

    session_id: str
    message: Dict[str, Any]
    uuid: Optional[str] = None
    parent_tool_use_id: Optional[str] = None

    @property
    def type(self) -> MessageType:
        return MessageType.USER

    @property
    def content(self) -> Union[str, List[ContentBlock]]:
        """Plain string content, or parsed blocks when the content is a list."""
        raw = self.message.get("content", "")
        if isinstance(raw, list):
            return parse_content_blocks(raw)
        return raw if isinstance(raw, str) else ""

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "user",
            "session_id": self.session_id,
            "message": self.message,
        }
        if self.uuid:
            result["uuid"] = self.uuid
        if self.parent_tool_use_id:
            result["parent_tool_use_id"] = self.parent_tool_use_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserMessage":
        context = "user message"
        return cls(
            session_id=require_str(data, "session_id", context),
            message=require_dict(data, "message", context),
            uuid=optional_str(data, "uuid", context),
            parent_tool_use_id=optional_str(data, "parent_tool_use_id", context),
        )


@dataclass(frozen=True)
class SystemMessage:
    """Session initialization and configuration message."""

    subtype: str  # e.g., "init"
    session_id: str
    cwd: Optional[str] = None
    model: Optional[str] = None
    tools: Optional[List[str]] = None
    mcp_servers: Optional[List[Dict[str, Any]]] = None
    permission_mode: Optional[str] = None
    api_key_source: Optional[str] = None

    @property
    def type(self) -> MessageType:
        return MessageType.SYSTEM

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "system",
            "subtype": self.subtype,
            "session_id": self.session_id,
        }
        if self.cwd:
            result["cwd"] = self.cwd
        if self.model:
            result["model"] = self.model
        if self.tools is not None:
            result["tools"] = self.tools
        if self.mcp_servers is not None:
            result["mcp_servers"] = self.mcp_servers
        if self.permission_mode:
            result["permissionMode"] = self.permission_mode
        if self.api_key_source:
            result["apiKeySource"] = self.api_key_source
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemMessage":
        context = "system message"
        return cls(
            subtype=require_str(data, "subtype", context),
            session_id=require_str(data, "session_id", context),
            cwd=optional_str(data, "cwd", context),
            model=optional_str(data, "model", context),
            tools=optional_list(data, "tools", context),
            mcp_servers=optional_list(data, "mcp_servers", context),
            permission_mode=optional_str(data, "permissionMode", context),
            api_key_source=optional_str(data, "apiKeySource", context),
        )


@dataclass(frozen=True)
class Usage:
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_read_input_tokens": self.cache_read_input_tokens,
            "cache_creation_input_tokens": self.cache_creation_input_tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Usage":
        context = "usage"
        return cls(
            input_tokens=optional_int(data, "input_tokens", context) or 0,
            output_tokens=optional_int(data, "output_tokens", context) or 0,
            cache_read_input_tokens=optional_int(data, "cache_read_input_tokens", context) or 0,
            cache_creation_input_tokens=optional_int(data, "cache_creation_input_tokens", context) or 0,
        )


@dataclass(frozen=True)
class ResultMessage:
    """Final result of a turn.

    Every result message ends the turn; ``is_success`` tells whether the
    turn completed normally.
    """

    uuid: str
    session_id: str
    subtype: str  # e.g., "success", "error_max_turns"
    result: Optional[str] = None
    cost_usd: Optional[float] = None
    total_cost_usd: Optional[float] = None
    duration_ms: Optional[int] = None
    duration_api_ms: Optional[int] = None
    is_error: Optional[bool] = None
    num_turns: Optional[int] = None
    usage: Optional[Usage] = None
    structured_output: Any = None

    @property
    def type(self) -> MessageType:
        return MessageType.RESULT

    @property
    def is_success(self) -> bool:
        return self.subtype == "success"

    # --- Structured output helpers ---

    @property
    def has_structured_output(self) -> bool:
        return self.structured_output is not None

    @property
    def structured_output_dict(self) -> Optional[Dict[str, Any]]:
        if isinstance(self.structured_output, dict):
            return self.structured_output
        return None

    @property
    def structured_output_list(self) -> Optional[List[Any]]:
        if isinstance(self.structured_output, list):
            return self.structured_output
        return None

    def get_output(self, key: str, default: Any = None) -> Any:
        """Get a value from an object-shaped structured output."""
        output = self.structured_output_dict
        if output is None:
            return default
        return output.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "result",
            "uuid": self.uuid,
            "session_id": self.session_id,
            "subtype": self.subtype,
        }
        optional_fields = {
            "result": self.result,
            "cost_usd": self.cost_usd,
            "total_cost_usd": self.total_cost_usd,
            "duration_ms": self.duration_ms,
            "duration_api_ms": self.duration_api_ms,
            "is_error": self.is_error,
            "num_turns": self.num_turns,
            "structured_output": self.structured_output,
        }
        for key, value in optional_fields.items():
            if value is not None:
                result[key] = value
        if self.usage:
            result["usage"] = self.usage.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultMessage":
        context = "result message"
        usage_data = optional_dict(data, "usage", context)
        return cls(
            uuid=require_str(data, "uuid", context),
            session_id=require_str(data, "session_id", context),
            subtype=require_str(data, "subtype", context),
            result=optional_str(data, "result", context),
            cost_usd=optional_number(data, "cost_usd", context),
            total_cost_usd=optional_number(data, "total_cost_usd", context),
            duration_ms=optional_int(data, "duration_ms", context),
            duration_api_ms=optional_int(data, "duration_api_ms", context),
            is_error=optional_bool(data, "is_error", context),
            num_turns=optional_int(data, "num_turns", context),
            usage=Usage.from_dict(usage_data) if usage_data is not None else None,
            structured_output=data.get("structured_output"),
        )


@dataclass(frozen=True)
class PermissionRequest:
    """Out-of-band request for a permission decision on a tool use."""

    tool_use_id: str
    tool_name: str
    tool_input: Dict[str, Any]

    @property
    def type(self) -> MessageType:
        return MessageType.PERMISSION_REQUEST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "permission_request",
            "tool_use_id": self.tool_use_id,
            "tool_name": self.tool_name,
            "tool_input": self.tool_input,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionRequest":
        context = "permission_request message"
        return cls(
            tool_use_id=require_str(data, "tool_use_id", context),
            tool_name=require_str(data, "tool_name", context),
            tool_input=require_dict(data, "tool_input", context),
        )


@dataclass(frozen=True)
class UserQuestion:
    """Question the agent asks the user; answered with answer_question()."""

    uuid: str
    message: str

    @property
    def type(self) -> MessageType:
        return MessageType.USER_QUESTION

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "user_question", "uuid": self.uuid, "message": self.message}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserQuestion":
        context = "user_question message"
        return cls(
            uuid=require_str(data, "uuid", context),
            message=require_str(data, "message", context),
        )


@dataclass(frozen=True)
class StreamEvent:
    """Streaming event for incremental output (with --include-partial-messages)."""

    uuid: str
    session_id: str
    event: Dict[str, Any]
    parent_tool_use_id: Optional[str] = None

    @property
    def type(self) -> MessageType:
        return MessageType.STREAM_EVENT

    @property
    def event_type(self) -> str:
        """message_start, content_block_start, content_block_delta, etc."""
        value = self.event.get("type", "")
        return value if isinstance(value, str) else ""

    @property
    def delta_text(self) -> Optional[str]:
        """Text delta carried by a content_block_delta event, if any."""
        if self.event_type != "content_block_delta":
            return None
        delta = self.event.get("delta")
        if isinstance(delta, dict) and delta.get("type") == "text_delta":
            return delta.get("text", "")
        return None

    @property
    def is_text_delta(self) -> bool:
        """Check if this is a text delta event with content."""
        return self.delta_text is not None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": "stream_event",
            "uuid": self.uuid,
            "session_id": self.session_id,
            "event": self.event,
        }
        if self.parent_tool_use_id:
            result["parent_tool_use_id"] = self.parent_tool_use_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamEvent":
        context = "stream_event message"
        return cls(
            uuid=require_str(data, "uuid", context),
            session_id=require_str(data, "session_id", context),
            event=require_dict(data, "event", context),
            parent_tool_use_id=optional_str(data, "parent_tool_use_id", context),
        )


@dataclass(frozen=True)
class ControlRequest:
    """Control request from the CLI that this side must answer."""

    request_id: str
    request: ControlRequestInner

    @property
    def type(self) -> MessageType:
        return MessageType.CONTROL_REQUEST

    @property
    def subtype(self) -> Optional[str]:
        return self.request.subtype

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "control_request",
            "request_id": self.request_id,
            "request": self.request.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlRequest":
        context = "control_request message"
        request_id = require_str(data, "request_id", context)
        inner = require_dict(data, "request", context)
        try:
            request = parse_control_request_inner(inner)
        except ProtocolDecodeError as e:
            # Keep the request_id so the request can still be answered
            request = MalformedControlRequest.from_error(inner, e)
        return cls(request_id=request_id, request=request)


@dataclass(frozen=True)
class ControlResponseMessage:
    """Acknowledgment from the CLI of a control request this side sent."""

    response: Dict[str, Any]

    @property
    def type(self) -> MessageType:
        return MessageType.CONTROL_RESPONSE

    @property
    def request_id(self) -> Optional[str]:
        return self.response.get("request_id")

    @property
    def subtype(self) -> Optional[str]:
        return self.response.get("subtype")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "control_response", "response": self.response}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlResponseMessage":
        return cls(response=require_dict(data, "response", "control_response message"))


# Union type for all messages
Message = Union[
    AssistantMessage,
    UserMessage,
    SystemMessage,
    ResultMessage,
    PermissionRequest,
    UserQuestion,
    StreamEvent,
    ControlRequest,
    ControlResponseMessage,
]


_MESSAGE_PARSERS: Dict[str, Callable[[Dict[str, Any]], Message]] = {
    MessageType.ASSISTANT.value: AssistantMessage.from_dict,
    MessageType.USER.value: UserMessage.from_dict,
    MessageType.SYSTEM.value: SystemMessage.from_dict,
    MessageType.RESULT.value: ResultMessage.from_dict,
    MessageType.PERMISSION_REQUEST.value: PermissionRequest.from_dict,
    MessageType.USER_QUESTION.value: UserQuestion.from_dict,
    MessageType.STREAM_EVENT.value: StreamEvent.from_dict,
    MessageType.CONTROL_REQUEST.value: ControlRequest.from_dict,
    MessageType.CONTROL_RESPONSE.value: ControlResponseMessage.from_dict,
}


def parse_message(data: Dict[str, Any]) -> Message:
    """Parse a message from its dict representation.

    Raises:
        ProtocolDecodeError: If the type is missing or unknown, or a
            required field is absent or has the wrong type.
    """
    msg_type = data.get("type")
    if msg_type is None:
        raise ProtocolDecodeError("Message has no 'type' field")
    if not isinstance(msg_type, str):
        raise ProtocolDecodeError(f"Message 'type' must be a string, got {type(msg_type).__name__}")

    parser = _MESSAGE_PARSERS.get(msg_type)
    if parser is None:
        raise ProtocolDecodeError(f"Unknown message type: {msg_type}")
    return parser(data)


def decode(line: str) -> Message:
    """Decode a single NDJSON line into a message.

    Raises:
        ProtocolDecodeError: Carrying the raw line, for any decode failure.
    """
    data = load_object(line)
    try:
        return parse_message(data)
    except ProtocolDecodeError as e:
        if e.raw_line:
            raise
        raise ProtocolDecodeError(str(e), raw_line=line) from e


# Kept for callers that think in NDJSON terms
parse_ndjson_line = decode
