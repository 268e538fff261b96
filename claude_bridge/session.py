"""Session facade: turn-taking API over one CLI process.

Example:
    options = AgentOptions(model="sonnet", mcp_servers={"calc": calc_server})
    with AgentSession(options) as session:
        session.query("What is 2 + 3?")
        for message in session.each_response():
            if isinstance(message, AssistantMessage):
                print(message.text)
"""

import logging
import threading
import time
import uuid
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from .bridge import ControlBridge
from .control import ControlInitializeRequest, ControlSetPermissionModeRequest
from .env import resolve_permission_mode
from .errors import ProcessError, SessionStateError
from .options import AgentOptions
from .permissions import PermissionMode
from .pipeline import HookPipeline
from .transport import SubprocessCLITransport
from .types import (
    AssistantMessage,
    ControlRequest,
    ControlResponseMessage,
    Message,
    PermissionRequest,
    ResultMessage,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    TURN_IN_FLIGHT = "turn_in_flight"
    AWAITING_PROMPT = "awaiting_prompt"
    STOPPED = "stopped"


_ACTIVE_STATES = frozenset({
    SessionState.STARTED,
    SessionState.TURN_IN_FLIGHT,
    SessionState.AWAITING_PROMPT,
})


class AgentSession:
    """One conversation with a Claude CLI process.

    Control requests and control responses are handled internally and
    never reach the caller. Every other message is yielded in the order
    the CLI sent it, after hooks for it have run.

    Args:
        options: Session configuration.
        transport: Transport to use instead of spawning the CLI; must
            provide the SubprocessCLITransport interface.
    """

    def __init__(self, options: Optional[AgentOptions] = None, transport: Any = None):
        self._options = options or AgentOptions()
        self._transport = transport or SubprocessCLITransport(self._options)
        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()
        self._interrupted = False

        self._pipeline = HookPipeline(
            send=self._transport.send,
            hooks=self._options.hooks,
            can_use_tool=self._options.can_use_tool,
            permission_mode=resolve_permission_mode(self._options.permission_mode),
            cwd=self._options.cwd,
            session_id=lambda: self.session_id,
        )
        self._bridge = ControlBridge(
            send_response=self._transport.send_control_response,
            pipeline=self._pipeline,
            servers=self._options.sdk_mcp_servers,
        )

    # ==================== Properties ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._transport.session_id

    @property
    def permission_mode(self) -> Optional[PermissionMode]:
        return self._pipeline.permission_mode

    @property
    def pending_permissions(self) -> List[str]:
        """tool_use_ids of permission requests waiting for grant_permission()."""
        return self._pipeline.pending_permissions

    def exit_error(self) -> Optional[ProcessError]:
        return self._transport.exit_error()

    def _require_active(self, operation: str) -> None:
        if self._state not in _ACTIVE_STATES:
            raise SessionStateError(
                f"Cannot {operation}: session is {self._state.value}"
            )

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Spawn the CLI, fire session-start hooks and announce SDK servers.

        Raises:
            SessionStateError: If the session was already started.
            ProcessNotFoundError: If the CLI cannot be executed.
        """
        with self._state_lock:
            if self._state != SessionState.IDLE:
                raise SessionStateError(f"Cannot start: session is {self._state.value}")
            self._transport.start()
            self._state = SessionState.STARTED

        self._pipeline.session_start()

        server_names = self._bridge.server_names
        if server_names:
            logger.debug(f"Announcing SDK MCP servers: {server_names}")
            self._transport.send({
                "type": "control_request",
                "request": ControlInitializeRequest(sdk_mcp_servers=server_names).to_dict(),
            })

    def stop(self) -> None:
        """Fire session-end hooks and shut the CLI down. Idempotent."""
        with self._state_lock:
            if self._state == SessionState.STOPPED:
                return
            was_active = self._state in _ACTIVE_STATES
            self._state = SessionState.STOPPED

        if was_active:
            self._pipeline.session_end()
            self._transport.stop()

    def __enter__(self) -> "AgentSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # ==================== Outbound ====================

    def query(self, prompt: Union[str, List[Dict[str, Any]]]) -> None:
        """Start a turn with a user prompt."""
        self._require_active("query")
        self._interrupted = False
        self.send_user_message(prompt)
        self._state = SessionState.TURN_IN_FLIGHT

    def send_user_message(self, content: Union[str, List[Dict[str, Any]]]) -> None:
        """Send a user message, e.g. a follow-up while a turn is running."""
        self._require_active("send a user message")
        if isinstance(content, str):
            self._pipeline.user_prompt_submit(content)
        self._transport.send({
            "type": "user",
            "message": {"role": "user", "content": content},
        })

    def interrupt(self) -> None:
        """Ask the CLI to stop the current turn. Sent at most once per turn."""
        self._require_active("interrupt")
        if self._interrupted:
            return
        self._interrupted = True
        self._transport.send({"type": "interrupt"})

    def rewind_files(self, user_message_uuid: str) -> None:
        """Rewind tracked files to their state at a user message."""
        self._require_active("rewind files")
        self._transport.send({"type": "rewind_files", "user_message_uuid": user_message_uuid})

    def grant_permission(
        self, tool_use_id: str, allow: bool, reason: Optional[str] = None
    ) -> bool:
        """Answer a pending permission request.

        Returns:
            False if no request with that id is pending (already answered).
        """
        self._require_active("grant permission")
        return self._pipeline.respond_permission(tool_use_id, allow, reason)

    def answer_question(self, question_uuid: str, answer: str) -> None:
        """Answer a UserQuestion."""
        self._require_active("answer a question")
        self._transport.send({"type": "user_response", "uuid": question_uuid, "message": answer})

    def set_permission_mode(self, mode: Union[PermissionMode, str]) -> str:
        """Change the permission mode mid-session.

        Returns:
            The request_id of the control request sent.
        """
        self._require_active("set permission mode")
        parsed = PermissionMode.parse(mode)
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        self._transport.send({
            "type": "control_request",
            "request_id": request_id,
            "request": ControlSetPermissionModeRequest(mode=parsed.value).to_dict(),
        })
        self._pipeline.permission_mode = parsed
        return request_id

    # ==================== Inbound ====================

    def _process_inbound(self, message: Message) -> bool:
        """Handle a message internally; return True if the caller should see it."""
        if isinstance(message, ControlRequest):
            self._bridge.handle(message)
            return False
        if isinstance(message, ControlResponseMessage):
            logger.debug(f"Control response for {message.request_id}: {message.subtype}")
            return False

        if isinstance(message, PermissionRequest):
            self._pipeline.handle_permission_request(message)
        elif isinstance(message, AssistantMessage):
            self._pipeline.process_assistant_message(message)
        elif isinstance(message, ResultMessage):
            self._pipeline.process_result(message)
            if self._state == SessionState.TURN_IN_FLIGHT:
                self._state = SessionState.AWAITING_PROMPT
        return True

    def each_response(self) -> Iterator[Message]:
        """Yield the messages of the current turn, ending with its result.

        Also ends if the CLI's output ends before a result arrives.
        """
        self._require_active("iterate responses")
        while True:
            message = self._transport.receive()
            if message is None:
                if self._transport.at_eof:
                    logger.debug("CLI output ended before the turn's result")
                    return
                continue
            if not self._process_inbound(message):
                continue
            yield message
            if isinstance(message, ResultMessage):
                return

    def receive(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Next caller-visible message, or None on timeout or end of output."""
        self._require_active("receive")
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())
            message = self._transport.receive(timeout=remaining)
            if message is None:
                if self._transport.at_eof or deadline is not None:
                    return None
                continue
            if self._process_inbound(message):
                return message
