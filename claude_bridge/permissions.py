"""Permission modes, decisions and permission-rule updates.

A permission callback receives a PermissionContext and returns a
PermissionResult (or a bare bool). Results serialize to the payload the
CLI expects in a ``can_use_tool`` control response.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import ConfigurationError


class PermissionMode(str, Enum):
    """CLI permission modes."""

    DEFAULT = "default"
    """Standard permission behavior."""

    ACCEPT_EDITS = "acceptEdits"
    """Auto-accept file edits."""

    PLAN = "plan"
    """Planning mode, no execution."""

    BYPASS_PERMISSIONS = "bypassPermissions"
    """Bypass all permission checks."""

    @classmethod
    def parse(cls, value: Union[str, "PermissionMode"]) -> "PermissionMode":
        """Parse a mode from its wire spelling or a snake_case alias.

        Raises:
            ConfigurationError: If the value names no known mode.
        """
        if isinstance(value, PermissionMode):
            return value
        normalized = value.strip().replace("-", "_").replace("_", "").lower()
        for mode in cls:
            if mode.value.lower() == normalized:
                return mode
        valid = ", ".join(m.value for m in cls)
        raise ConfigurationError(f"Invalid permission mode: {value!r}. Valid modes: {valid}")


class PermissionBehavior(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class PermissionUpdateDestination(str, Enum):
    """Where a permission-rule update is persisted."""

    USER_SETTINGS = "userSettings"
    PROJECT_SETTINGS = "projectSettings"
    LOCAL_SETTINGS = "localSettings"
    SESSION = "session"


@dataclass(frozen=True)
class PermissionRuleValue:
    """A single permission rule: a tool name and an optional rule content."""

    tool_name: str
    rule_content: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"toolName": self.tool_name}
        if self.rule_content is not None:
            result["ruleContent"] = self.rule_content
        return result


# ==================== Permission Updates ====================


@dataclass(frozen=True)
class AddRulesUpdate:
    rules: List[PermissionRuleValue]
    behavior: PermissionBehavior
    destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "addRules",
            "rules": [r.to_dict() for r in self.rules],
            "behavior": self.behavior.value,
            "destination": self.destination.value,
        }


@dataclass(frozen=True)
class ReplaceRulesUpdate:
    rules: List[PermissionRuleValue]
    behavior: PermissionBehavior
    destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "replaceRules",
            "rules": [r.to_dict() for r in self.rules],
            "behavior": self.behavior.value,
            "destination": self.destination.value,
        }


@dataclass(frozen=True)
class RemoveRulesUpdate:
    rules: List[PermissionRuleValue]
    behavior: PermissionBehavior
    destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "removeRules",
            "rules": [r.to_dict() for r in self.rules],
            "behavior": self.behavior.value,
            "destination": self.destination.value,
        }


@dataclass(frozen=True)
class SetModeUpdate:
    mode: PermissionMode
    destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "setMode",
            "mode": self.mode.value,
            "destination": self.destination.value,
        }


@dataclass(frozen=True)
class AddDirectoriesUpdate:
    directories: List[str]
    destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "addDirectories",
            "directories": list(self.directories),
            "destination": self.destination.value,
        }


@dataclass(frozen=True)
class RemoveDirectoriesUpdate:
    directories: List[str]
    destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "removeDirectories",
            "directories": list(self.directories),
            "destination": self.destination.value,
        }


PermissionUpdate = Union[
    AddRulesUpdate,
    ReplaceRulesUpdate,
    RemoveRulesUpdate,
    SetModeUpdate,
    AddDirectoriesUpdate,
    RemoveDirectoriesUpdate,
]


# ==================== Context and Result ====================


@dataclass(frozen=True)
class PermissionContext:
    """What a permission callback gets to decide on."""

    tool_name: str
    tool_input: Dict[str, Any]
    session_id: Optional[str] = None
    suggestions: List[Dict[str, Any]] = field(default_factory=list)
    tool_use_id: Optional[str] = None
    blocked_path: Optional[str] = None


@dataclass(frozen=True)
class PermissionResult:
    """Outcome of a permission decision.

    A deny is final for the action. An allow may carry a modified tool
    input and permission-rule updates to apply before the tool runs.
    """

    behavior: PermissionBehavior
    reason: Optional[str] = None
    updated_input: Optional[Dict[str, Any]] = None
    updated_permissions: List[PermissionUpdate] = field(default_factory=list)
    interrupt: bool = False

    @property
    def is_allowed(self) -> bool:
        return self.behavior == PermissionBehavior.ALLOW

    @property
    def is_denied(self) -> bool:
        return self.behavior == PermissionBehavior.DENY

    @classmethod
    def allow(cls, updated_input: Optional[Dict[str, Any]] = None) -> "PermissionResult":
        return cls(behavior=PermissionBehavior.ALLOW, updated_input=updated_input)

    @classmethod
    def deny(cls, reason: Optional[str] = None, interrupt: bool = False) -> "PermissionResult":
        return cls(behavior=PermissionBehavior.DENY, reason=reason, interrupt=interrupt)

    @classmethod
    def allow_and_remember(
        cls,
        rules: List[PermissionRuleValue],
        destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION,
        updated_input: Optional[Dict[str, Any]] = None,
    ) -> "PermissionResult":
        """Allow and persist an allow rule so the CLI stops asking."""
        update = AddRulesUpdate(rules=rules, behavior=PermissionBehavior.ALLOW,
                                destination=destination)
        return cls(behavior=PermissionBehavior.ALLOW, updated_input=updated_input,
                   updated_permissions=[update])

    @classmethod
    def deny_and_remember(
        cls,
        rules: List[PermissionRuleValue],
        reason: Optional[str] = None,
        destination: PermissionUpdateDestination = PermissionUpdateDestination.SESSION,
    ) -> "PermissionResult":
        """Deny and persist a deny rule."""
        update = AddRulesUpdate(rules=rules, behavior=PermissionBehavior.DENY,
                                destination=destination)
        return cls(behavior=PermissionBehavior.DENY, reason=reason,
                   updated_permissions=[update])

    @classmethod
    def coerce(cls, value: Union["PermissionResult", bool, None]) -> "PermissionResult":
        """Normalize a callback return value; a bool maps to allow/deny."""
        if isinstance(value, PermissionResult):
            return value
        if isinstance(value, bool):
            return cls.allow() if value else cls.deny()
        raise TypeError(
            f"Permission callback must return PermissionResult or bool, "
            f"got {type(value).__name__}"
        )

    def to_control_payload(self) -> Dict[str, Any]:
        """Payload for a ``can_use_tool`` control response."""
        # The CLI only understands allow/deny here; ask falls back to deny
        behavior = "allow" if self.is_allowed else "deny"
        payload: Dict[str, Any] = {"behavior": behavior}
        if self.reason is not None:
            payload["reason"] = self.reason
            if behavior == "deny":
                payload["message"] = self.reason
        if self.updated_input is not None:
            payload["updatedInput"] = self.updated_input
        if self.updated_permissions:
            payload["updatedPermissions"] = [u.to_dict() for u in self.updated_permissions]
        if self.interrupt:
            payload["interrupt"] = True
        return payload


PermissionCallback = Callable[[PermissionContext], Union[PermissionResult, bool]]
