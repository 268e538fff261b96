"""Hook registration and hook input/output records.

Hooks are callbacks fired at named lifecycle and tool-use events. A hook
receives ``(HookInput, tool_use_id, HookContext)`` and returns a
HookResult, or None to let the action proceed unchanged.

Example:
    hooks = HookConfig()

    @hooks.on(HookEvent.PRE_TOOL_USE, matcher="^Bash$")
    def no_rm(hook_input, tool_use_id, context):
        if "rm -rf" in hook_input.tool_input.get("command", ""):
            return HookResult.deny("refusing to delete")
        return None
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern

from .errors import ConfigurationError


class HookEvent(str, Enum):
    """Events a hook can be registered for."""

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    POST_TOOL_USE_FAILURE = "PostToolUseFailure"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    STOP = "Stop"
    SUBAGENT_START = "SubagentStart"
    SUBAGENT_STOP = "SubagentStop"
    PRE_COMPACT = "PreCompact"
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    NOTIFICATION = "Notification"
    PERMISSION_REQUEST = "PermissionRequest"

    @property
    def is_tool_event(self) -> bool:
        """Whether matchers filter this event by tool name."""
        return self in _TOOL_EVENTS

    @classmethod
    def from_hook_name(cls, name: str) -> Optional["HookEvent"]:
        """Map a wire hook name (snake_case or PascalCase) to an event."""
        try:
            return cls(name)
        except ValueError:
            pass
        pascal = "".join(part.capitalize() for part in name.split("_"))
        try:
            return cls(pascal)
        except ValueError:
            return None


_TOOL_EVENTS = frozenset({
    HookEvent.PRE_TOOL_USE,
    HookEvent.POST_TOOL_USE,
    HookEvent.POST_TOOL_USE_FAILURE,
    HookEvent.PERMISSION_REQUEST,
})


@dataclass(frozen=True)
class HookInput:
    """Input handed to a hook callback.

    Common fields are filled whenever the session knows them. Fields that
    do not apply to the firing event stay None.
    """

    hook_event_name: str
    session_id: Optional[str] = None
    transcript_path: Optional[str] = None
    cwd: Optional[str] = None
    permission_mode: Optional[str] = None

    # Tool events
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    tool_use_id: Optional[str] = None
    tool_response: Any = None
    error: Optional[str] = None
    is_interrupt: Optional[bool] = None

    # Prompt / stop
    prompt: Optional[str] = None
    stop_hook_active: Optional[bool] = None

    # Subagents
    agent_id: Optional[str] = None
    agent_type: Optional[str] = None
    agent_transcript_path: Optional[str] = None

    # Lifecycle
    notification_message: Optional[str] = None
    notification_title: Optional[str] = None
    notification_type: Optional[str] = None
    trigger: Optional[str] = None
    custom_instructions: Optional[str] = None
    source: Optional[str] = None
    session_end_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Fields that are set, keyed by attribute name."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class HookContext:
    """Session context passed alongside a HookInput."""

    session_id: Optional[str] = None
    cwd: Optional[str] = None
    permission_mode: Optional[str] = None


@dataclass(frozen=True)
class HookSpecificOutput:
    """Event-specific part of a hook's result."""

    hook_event_name: str
    permission_decision: Optional[str] = None  # "allow", "deny" or "ask"
    permission_decision_reason: Optional[str] = None
    updated_input: Optional[Dict[str, Any]] = None
    additional_context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"hookEventName": self.hook_event_name}
        if self.permission_decision is not None:
            result["permissionDecision"] = self.permission_decision
        if self.permission_decision_reason is not None:
            result["permissionDecisionReason"] = self.permission_decision_reason
        if self.updated_input is not None:
            result["updatedInput"] = self.updated_input
        if self.additional_context is not None:
            result["additionalContext"] = self.additional_context
        return result


@dataclass(frozen=True)
class HookResult:
    """Outcome of a hook callback."""

    continue_execution: bool = True
    decision: Optional[str] = None  # "approve" or "block"
    reason: Optional[str] = None
    system_message: Optional[str] = None
    suppress_output: bool = False
    hook_specific_output: Optional[HookSpecificOutput] = None

    @property
    def is_denied(self) -> bool:
        if not self.continue_execution or self.decision == "block":
            return True
        output = self.hook_specific_output
        return output is not None and output.permission_decision == "deny"

    @property
    def updated_input(self) -> Optional[Dict[str, Any]]:
        if self.hook_specific_output is None:
            return None
        return self.hook_specific_output.updated_input

    @classmethod
    def allow(cls) -> "HookResult":
        return cls()

    @classmethod
    def deny(cls, reason: str) -> "HookResult":
        return cls(
            continue_execution=False,
            decision="block",
            reason=reason,
            hook_specific_output=HookSpecificOutput(
                hook_event_name=HookEvent.PRE_TOOL_USE.value,
                permission_decision="deny",
                permission_decision_reason=reason,
            ),
        )

    @classmethod
    def allow_with_input(cls, updated_input: Dict[str, Any]) -> "HookResult":
        """Allow the tool to run with a modified input."""
        return cls(
            hook_specific_output=HookSpecificOutput(
                hook_event_name=HookEvent.PRE_TOOL_USE.value,
                permission_decision="allow",
                updated_input=updated_input,
            ),
        )

    @classmethod
    def allow_with_context(
        cls, context: str, event: HookEvent = HookEvent.POST_TOOL_USE
    ) -> "HookResult":
        """Allow and hand extra context back to the model."""
        return cls(
            hook_specific_output=HookSpecificOutput(
                hook_event_name=event.value,
                additional_context=context,
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"continue": self.continue_execution}
        if self.decision is not None:
            result["decision"] = self.decision
        if self.reason is not None:
            result["reason"] = self.reason
        if self.system_message is not None:
            result["systemMessage"] = self.system_message
        if self.suppress_output:
            result["suppressOutput"] = True
        if self.hook_specific_output is not None:
            result["hookSpecificOutput"] = self.hook_specific_output.to_dict()
        return result


HookCallback = Callable[[HookInput, Optional[str], HookContext], Optional[HookResult]]


@dataclass
class HookMatcher:
    """A group of callbacks filtered by a tool-name regex.

    Attributes:
        matcher: Regex searched against the tool name; None matches every tool.
        hooks: Callbacks run in registration order.
    """

    matcher: Optional[str] = None
    hooks: List[HookCallback] = field(default_factory=list)
    _pattern: Optional[Pattern[str]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.matcher is not None:
            try:
                self._pattern = re.compile(self.matcher)
            except re.error as e:
                raise ConfigurationError(f"Invalid hook matcher {self.matcher!r}: {e}") from e

    def matches(self, tool_name: Optional[str]) -> bool:
        if self._pattern is None:
            return True
        if tool_name is None:
            return False
        return self._pattern.search(tool_name) is not None


class HookConfig:
    """Hook registrations keyed by event."""

    def __init__(self, matchers: Optional[Dict[HookEvent, List[HookMatcher]]] = None):
        self._matchers: Dict[HookEvent, List[HookMatcher]] = {}
        for event, event_matchers in (matchers or {}).items():
            self._matchers[HookEvent(event)] = list(event_matchers)

    def add(
        self,
        event: HookEvent,
        callback: HookCallback,
        matcher: Optional[str] = None,
    ) -> None:
        """Register a callback for an event."""
        event = HookEvent(event)
        self._matchers.setdefault(event, []).append(
            HookMatcher(matcher=matcher, hooks=[callback])
        )

    def add_matcher(self, event: HookEvent, hook_matcher: HookMatcher) -> None:
        self._matchers.setdefault(HookEvent(event), []).append(hook_matcher)

    def on(
        self,
        event: HookEvent,
        callback: Optional[HookCallback] = None,
        matcher: Optional[str] = None,
    ) -> Callable[[HookCallback], HookCallback]:
        """Register a callback, usable directly or as a decorator."""
        if callback is not None:
            self.add(event, callback, matcher)
            return callback

        def decorator(func: HookCallback) -> HookCallback:
            self.add(event, func, matcher)
            return func

        return decorator

    def matchers_for(self, event: HookEvent) -> List[HookMatcher]:
        return list(self._matchers.get(HookEvent(event), []))

    def callbacks_for(
        self, event: HookEvent, tool_name: Optional[str] = None
    ) -> List[HookCallback]:
        """Callbacks that apply to an event, in registration order.

        Matchers only filter tool events; for other events every callback
        registered under the event applies.
        """
        event = HookEvent(event)
        callbacks: List[HookCallback] = []
        for hook_matcher in self._matchers.get(event, []):
            if event.is_tool_event and not hook_matcher.matches(tool_name):
                continue
            callbacks.extend(hook_matcher.hooks)
        return callbacks

    def has_hooks(self, event: HookEvent) -> bool:
        return any(m.hooks for m in self._matchers.get(HookEvent(event), []))

    def __bool__(self) -> bool:
        return any(m.hooks for matchers in self._matchers.values() for m in matchers)
