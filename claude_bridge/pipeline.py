"""Hook and permission pipeline.

Runs registered hooks and the permission callback against the messages
and control requests of a session:

- Out-of-band ``permission_request`` messages go through pre-tool-use
  hooks (first deny wins), then permission-request hooks, then the
  permission callback. The decision is sent back exactly once.
- Tool-result blocks in assistant messages fire post-tool-use hooks,
  paired with the tool-use block of the same message.
- ``Task`` tool uses and results fire subagent start/stop hooks.
- Result messages fire stop hooks.
- ``hook_callback`` control requests fire the named hook's callbacks.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .control import ControlHookCallbackRequest, ControlPermissionRequest
from .hooks import HookConfig, HookContext, HookEvent, HookInput, HookResult
from .permissions import PermissionCallback, PermissionContext, PermissionMode, PermissionResult
from .types import AssistantMessage, PermissionRequest, ResultMessage, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)


SUBAGENT_TOOL_NAME = "Task"


class HookPipeline:
    """Hook and permission processing for one session.

    Args:
        send: Writes an outbound message to the CLI.
        hooks: Hook registrations.
        can_use_tool: Permission callback.
        permission_mode: Session permission mode.
        cwd: Working directory reported in hook inputs.
        session_id: Returns the current session id (known only once the
            CLI has sent its first message).
    """

    def __init__(
        self,
        send: Callable[[Dict[str, Any]], None],
        hooks: Optional[HookConfig] = None,
        can_use_tool: Optional[PermissionCallback] = None,
        permission_mode: Optional[PermissionMode] = None,
        cwd: Optional[str] = None,
        session_id: Optional[Callable[[], Optional[str]]] = None,
    ):
        self._send = send
        self._hooks = hooks if hooks is not None else HookConfig()
        self._can_use_tool = can_use_tool
        self.permission_mode = permission_mode
        self._cwd = cwd
        self._session_id = session_id or (lambda: None)

        # tool_use_id -> PermissionRequest awaiting a decision
        self._pending: Dict[str, PermissionRequest] = {}
        self._pending_lock = threading.Lock()

    # ==================== Hook plumbing ====================

    def context(self) -> HookContext:
        return HookContext(
            session_id=self._session_id(),
            cwd=self._cwd,
            permission_mode=self._mode_value(),
        )

    def _mode_value(self) -> Optional[str]:
        return self.permission_mode.value if self.permission_mode else None

    def _hook_input(self, event: HookEvent, **fields: Any) -> HookInput:
        common: Dict[str, Any] = {
            "session_id": self._session_id(),
            "cwd": self._cwd,
            "permission_mode": self._mode_value(),
        }
        # Explicit fields (e.g. from a hook_callback input) win over session values
        for key, value in common.items():
            if fields.get(key) is None:
                fields[key] = value
        return HookInput(hook_event_name=event.value, **fields)

    def run_hooks(
        self,
        event: HookEvent,
        hook_input: HookInput,
        tool_use_id: Optional[str] = None,
    ) -> List[HookResult]:
        """Run the callbacks registered for an observational event.

        A callback that raises is logged and skipped; the rest still run.
        """
        results: List[HookResult] = []
        callbacks = self._hooks.callbacks_for(event, hook_input.tool_name)
        if not callbacks:
            return results

        ctx = self.context()
        for callback in callbacks:
            try:
                result = callback(hook_input, tool_use_id, ctx)
            except Exception:
                logger.error(f"{event.value} hook raised, skipping", exc_info=True)
                continue
            results.append(result if result is not None else HookResult.allow())
        return results

    def _run_pre_tool_use(
        self, tool_name: str, tool_input: Dict[str, Any], tool_use_id: str
    ) -> Optional[HookResult]:
        """Run pre-tool-use hooks in order; return the first denial."""
        callbacks = self._hooks.callbacks_for(HookEvent.PRE_TOOL_USE, tool_name)
        if not callbacks:
            return None

        hook_input = self._hook_input(
            HookEvent.PRE_TOOL_USE,
            tool_name=tool_name,
            tool_input=tool_input,
            tool_use_id=tool_use_id,
        )
        ctx = self.context()
        for callback in callbacks:
            try:
                result = callback(hook_input, tool_use_id, ctx)
            except Exception as e:
                logger.error(f"PreToolUse hook raised for {tool_name}, denying", exc_info=True)
                return HookResult.deny(f"PreToolUse hook failed: {e}")
            if result is not None and result.is_denied:
                return result
        return None

    # ==================== Out-of-band permission requests ====================

    @property
    def pending_permissions(self) -> List[str]:
        """tool_use_ids still waiting for a decision."""
        with self._pending_lock:
            return list(self._pending)

    def handle_permission_request(self, request: PermissionRequest) -> bool:
        """Decide a permission request if hooks or the callback can.

        Returns:
            True if a decision was sent. False if the request is pending and
            the caller must answer it with ``respond_permission``.
        """
        if self.permission_mode == PermissionMode.BYPASS_PERMISSIONS:
            self._send_permission_response(request.tool_use_id, True, None)
            return True

        with self._pending_lock:
            if request.tool_use_id in self._pending:
                logger.warning(
                    f"Duplicate permission request for {request.tool_use_id}, ignoring"
                )
                return True
            self._pending[request.tool_use_id] = request

        # 1. Pre-tool-use hooks; the first denial short-circuits
        denial = self._run_pre_tool_use(
            request.tool_name, request.tool_input, request.tool_use_id
        )
        if denial is not None:
            reason = denial.reason
            output = denial.hook_specific_output
            if output is not None and output.permission_decision_reason:
                reason = output.permission_decision_reason
            self.respond_permission(request.tool_use_id, False, reason)
            return True

        # 2. Permission-request hooks (observational)
        self.run_hooks(
            HookEvent.PERMISSION_REQUEST,
            self._hook_input(
                HookEvent.PERMISSION_REQUEST,
                tool_name=request.tool_name,
                tool_input=request.tool_input,
                tool_use_id=request.tool_use_id,
            ),
            request.tool_use_id,
        )

        # 3. Permission callback, if any
        if self._can_use_tool is None:
            return False

        context = PermissionContext(
            tool_name=request.tool_name,
            tool_input=request.tool_input,
            session_id=self._session_id(),
            tool_use_id=request.tool_use_id,
        )
        try:
            result = PermissionResult.coerce(self._can_use_tool(context))
        except Exception as e:
            logger.error(f"Permission callback raised for {request.tool_name}, denying",
                         exc_info=True)
            result = PermissionResult.deny(f"Permission callback failed: {e}")

        self.respond_permission(request.tool_use_id, result.is_allowed, result.reason)
        return True

    def respond_permission(
        self, tool_use_id: str, allow: bool, reason: Optional[str] = None
    ) -> bool:
        """Send the decision for a pending permission request.

        Returns:
            False if the request was unknown or already answered.
        """
        with self._pending_lock:
            request = self._pending.pop(tool_use_id, None)
        if request is None:
            logger.warning(f"No pending permission request for {tool_use_id}, ignoring")
            return False
        self._send_permission_response(tool_use_id, allow, reason)
        return True

    def _send_permission_response(
        self, tool_use_id: str, allow: bool, reason: Optional[str]
    ) -> None:
        self._send({
            "type": "permission_response",
            "tool_use_id": tool_use_id,
            "allow": allow,
            "reason": reason,
        })

    # ==================== Control-path permission checks ====================

    def check_tool_permission(self, request: ControlPermissionRequest) -> Dict[str, Any]:
        """Payload for a ``can_use_tool`` control response.

        Defaults to allow when no callback is registered. Callback exceptions
        propagate so the bridge can answer with an error response.
        """
        if self._can_use_tool is None:
            return PermissionResult.allow().to_control_payload()

        context = PermissionContext(
            tool_name=request.tool_name,
            tool_input=request.input,
            session_id=self._session_id(),
            suggestions=list(request.permission_suggestions or []),
            tool_use_id=request.tool_use_id,
            blocked_path=request.blocked_path,
        )
        result = PermissionResult.coerce(self._can_use_tool(context))
        return result.to_control_payload()

    # ==================== Message-driven hooks ====================

    def process_assistant_message(self, message: AssistantMessage) -> None:
        """Fire post-tool-use and subagent hooks for an assistant message."""
        if not self._hooks:
            return

        tool_uses: Dict[str, ToolUseBlock] = {}
        ambiguous = set()
        for block in message.tool_uses:
            if block.id in tool_uses:
                ambiguous.add(block.id)
            tool_uses[block.id] = block

        for block_id in ambiguous:
            logger.warning(f"Tool use id {block_id} appears more than once, skipping its hooks")

        for block in message.content:
            if isinstance(block, ToolUseBlock):
                if block.name == SUBAGENT_TOOL_NAME and block.id not in ambiguous:
                    self._fire_subagent_start(block)
            elif isinstance(block, ToolResultBlock):
                if block.tool_use_id in ambiguous:
                    continue
                origin = tool_uses.get(block.tool_use_id)
                if origin is None:
                    logger.debug(
                        f"No tool use for result {block.tool_use_id} in message "
                        f"{message.uuid}, skipping hooks"
                    )
                    continue
                self._fire_post_tool_use(origin, block)
                if origin.name == SUBAGENT_TOOL_NAME:
                    self._fire_subagent_stop(origin, block)

    def _fire_post_tool_use(self, origin: ToolUseBlock, block: ToolResultBlock) -> None:
        event = HookEvent.POST_TOOL_USE_FAILURE if block.failed else HookEvent.POST_TOOL_USE
        content = block.content_text
        hook_input = self._hook_input(
            event,
            tool_name=origin.name,
            tool_input=origin.input,
            tool_use_id=block.tool_use_id,
            tool_response=content,
            error=content if block.failed else None,
        )
        self.run_hooks(event, hook_input, block.tool_use_id)

    def _fire_subagent_start(self, block: ToolUseBlock) -> None:
        agent_type = block.input.get("subagent_type")
        hook_input = self._hook_input(
            HookEvent.SUBAGENT_START,
            tool_name=block.name,
            tool_input=block.input,
            tool_use_id=block.id,
            agent_id=block.id,
            agent_type=agent_type if isinstance(agent_type, str) else None,
        )
        self.run_hooks(HookEvent.SUBAGENT_START, hook_input, block.id)

    def _fire_subagent_stop(self, origin: ToolUseBlock, block: ToolResultBlock) -> None:
        agent_type = origin.input.get("subagent_type")
        hook_input = self._hook_input(
            HookEvent.SUBAGENT_STOP,
            tool_name=origin.name,
            tool_use_id=block.tool_use_id,
            tool_response=block.content_text,
            agent_id=block.tool_use_id,
            agent_type=agent_type if isinstance(agent_type, str) else None,
        )
        self.run_hooks(HookEvent.SUBAGENT_STOP, hook_input, block.tool_use_id)

    def process_result(self, message: ResultMessage) -> None:
        """Fire stop hooks for a terminal result."""
        hook_input = self._hook_input(HookEvent.STOP)
        self.run_hooks(HookEvent.STOP, hook_input, message.uuid)

    # ==================== Session lifecycle hooks ====================

    def session_start(self, source: str = "startup") -> None:
        self.run_hooks(
            HookEvent.SESSION_START, self._hook_input(HookEvent.SESSION_START, source=source)
        )

    def session_end(self, reason: str = "other") -> None:
        self.run_hooks(
            HookEvent.SESSION_END,
            self._hook_input(HookEvent.SESSION_END, session_end_reason=reason),
        )

    def user_prompt_submit(self, prompt: str) -> List[HookResult]:
        return self.run_hooks(
            HookEvent.USER_PROMPT_SUBMIT,
            self._hook_input(HookEvent.USER_PROMPT_SUBMIT, prompt=prompt),
        )

    # ==================== Control-path hook callbacks ====================

    def handle_hook_callback(self, request: ControlHookCallbackRequest) -> None:
        """Run the callbacks of the hook named by a ``hook_callback`` request.

        These hooks are observational: their results are not sent back.
        """
        event = HookEvent.from_hook_name(request.hook)
        if event is None:
            logger.debug(f"No hook event named {request.hook!r}, ignoring callback")
            return
        hook_input = self._hook_callback_input(event, request.input or {})
        self.run_hooks(event, hook_input, request.tool_use_id or hook_input.tool_use_id)

    def _hook_callback_input(self, event: HookEvent, data: Dict[str, Any]) -> HookInput:
        def text(key: str) -> Optional[str]:
            value = data.get(key)
            return value if isinstance(value, str) else None

        def flag(key: str) -> Optional[bool]:
            value = data.get(key)
            return value if isinstance(value, bool) else None

        fields: Dict[str, Any] = {
            "session_id": text("session_id"),
            "transcript_path": text("transcript_path"),
            "cwd": text("cwd"),
            "permission_mode": text("permission_mode"),
        }

        if event == HookEvent.NOTIFICATION:
            fields["notification_message"] = text("message")
            fields["notification_title"] = text("title")
            fields["notification_type"] = text("notification_type")
        elif event == HookEvent.PRE_COMPACT:
            fields["trigger"] = text("trigger")
            fields["custom_instructions"] = text("custom_instructions")
        elif event == HookEvent.STOP:
            fields["stop_hook_active"] = flag("stop_hook_active")
        elif event == HookEvent.SESSION_START:
            fields["source"] = text("source")
        elif event == HookEvent.SESSION_END:
            fields["session_end_reason"] = text("reason")
        elif event == HookEvent.USER_PROMPT_SUBMIT:
            fields["prompt"] = text("prompt")
        elif event in (HookEvent.SUBAGENT_START, HookEvent.SUBAGENT_STOP):
            fields["agent_id"] = text("agent_id")
            fields["agent_type"] = text("agent_type")
            if event == HookEvent.SUBAGENT_STOP:
                fields["agent_transcript_path"] = text("agent_transcript_path")
                fields["stop_hook_active"] = flag("stop_hook_active")
        elif event.is_tool_event:
            fields["tool_name"] = text("tool_name")
            fields["tool_use_id"] = text("tool_use_id")
            tool_input = data.get("tool_input")
            fields["tool_input"] = tool_input if isinstance(tool_input, dict) else None
            if event != HookEvent.PRE_TOOL_USE and event != HookEvent.PERMISSION_REQUEST:
                fields["tool_response"] = data.get("tool_response")
                fields["error"] = text("error")
                fields["is_interrupt"] = flag("is_interrupt")

        return self._hook_input(event, **fields)
