#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool permission gate for revloop.

This is a thin policy hook, not a sandbox. Three modes are supported:

- ``trusted``: every call is approved.
- ``read_only_auto``: read-only tools are approved, everything else is sent
  to the approval callback.
- ``confirm``: every call not already allowed for the session is sent to the
  approval callback.

Without an approval callback, calls that need confirmation are denied.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

import yaml

from revloop.debug_logger import get_logger


logger = get_logger()


READ_ONLY_TOOLS: Set[str] = {
    "readFile",
    "listDirectory",
    "gitStatus",
    "searchFiles",
    "fileStats",
    "getFileTree",
    "searchRelevantContext",
    "gitDiff",
    "gitLog",
}

DESTRUCTIVE_TOOLS: Set[str] = {
    "delete",
    "writeFile",
    "runCommand",
    "executeCode",
    "runFile",
    "replaceInFile",
    "insertAtLine",
    "fuzzyReplace",
}


class PermissionMode(Enum):
    TRUSTED = "trusted"
    READ_ONLY_AUTO = "read_only_auto"
    CONFIRM = "confirm"


class RiskLevel(Enum):
    """Risk levels for tool operations."""
    LOW = "low"  # readFile, listDirectory, searchFiles
    MEDIUM = "medium"  # createFile, gitAdd
    HIGH = "high"  # writeFile, replaceInFile, runCommand
    CRITICAL = "critical"  # delete


def risk_level_for(tool_name: str) -> RiskLevel:
    if tool_name == "delete":
        return RiskLevel.CRITICAL
    if tool_name in DESTRUCTIVE_TOOLS:
        return RiskLevel.HIGH
    if tool_name in READ_ONLY_TOOLS:
        return RiskLevel.LOW
    return RiskLevel.MEDIUM


@dataclass
class PendingToolCall:
    """A tool call awaiting the host's approval."""
    tool_name: str
    params: Dict[str, Any]
    risk_level: RiskLevel
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApprovalDecision:
    approved: bool
    always_allow: bool = False


ApprovalCallback = Callable[[PendingToolCall], Union[ApprovalDecision, bool, Tuple[bool, bool]]]


@dataclass
class PermissionDenial:
    """Record of a denied permission request."""
    tool_name: str
    tool_args: Dict[str, Any]
    reason: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "tool_args": self.tool_args,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


@dataclass
class PermissionResult:
    """Result of a permission check."""
    allowed: bool
    reason: str
    risk_level: Optional[RiskLevel] = None
    requires_confirmation: bool = False


class PermissionPolicy:
    """Static allow/deny lists loaded from a YAML policy file.

    Example ``tool_policy.yaml``::

        mode: read_only_auto
        always_allow: [readFile, gitStatus]
        always_deny: [delete]
    """

    def __init__(self):
        self.mode: Optional[PermissionMode] = None
        self.always_allow: Set[str] = set()
        self.always_deny: Set[str] = set()

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> Tuple["PermissionPolicy", Optional[Exception]]:
        """Load policy from YAML file.

        Returns:
            Tuple of (policy, error). If error is not None, policy loading failed
            and the returned policy is empty.
        """
        policy = cls()

        if not yaml_path.exists():
            logger.log("permissions", "POLICY_NOT_FOUND", {"path": str(yaml_path)}, "DEBUG")
            return policy, None

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)

            if not data:
                return policy, None

            mode = data.get("mode")
            if mode:
                policy.mode = PermissionMode(str(mode).lower())
            policy.always_allow = set(data.get("always_allow") or [])
            policy.always_deny = set(data.get("always_deny") or [])
            return policy, None

        except (OSError, yaml.YAMLError, ValueError, AttributeError) as e:
            logger.log("permissions", "POLICY_LOAD_FAILED", {"path": str(yaml_path), "error": str(e)}, "ERROR")
            return cls(), e


class PermissionManager:
    """Decides whether a tool call may run."""

    def __init__(
        self,
        mode: PermissionMode = PermissionMode.CONFIRM,
        approval_callback: Optional[ApprovalCallback] = None,
        policy: Optional[PermissionPolicy] = None,
    ):
        self.policy = policy or PermissionPolicy()
        self.mode = self.policy.mode or mode
        self.approval_callback = approval_callback
        self.read_only_tools: Set[str] = set(READ_ONLY_TOOLS)
        self.destructive_tools: Set[str] = set(DESTRUCTIVE_TOOLS)
        self._session_allowed: Set[str] = set()
        self.denial_log: List[PermissionDenial] = []

    @classmethod
    def from_policy_file(cls, policy_path: Path, **kwargs) -> "PermissionManager":
        policy, error = PermissionPolicy.from_yaml(policy_path)
        if error is not None:
            # Fail closed: a broken policy file falls back to confirmation mode.
            kwargs["mode"] = PermissionMode.CONFIRM
        return cls(policy=policy, **kwargs)

    def set_trusted(self, enabled: bool) -> None:
        self.mode = PermissionMode.TRUSTED if enabled else PermissionMode.CONFIRM
        logger.log("permissions", "MODE_CHANGED", {"mode": self.mode.value})

    def is_read_only(self, tool_name: str) -> bool:
        return tool_name in self.read_only_tools

    def is_destructive(self, tool_name: str) -> bool:
        return tool_name in self.destructive_tools

    def check_permission(self, tool_name: str, params: Optional[Dict[str, Any]] = None) -> PermissionResult:
        """Check a call against the mode, the policy and the session cache.

        This may block on the approval callback.
        """
        params = params or {}
        risk = risk_level_for(tool_name)

        if tool_name in self.policy.always_deny:
            return self._deny(tool_name, params, "Denied by policy", risk)

        if self.mode == PermissionMode.TRUSTED:
            return PermissionResult(allowed=True, reason="Trusted mode", risk_level=risk)

        if tool_name in self.policy.always_allow:
            return PermissionResult(allowed=True, reason="Allowed by policy", risk_level=risk)

        if tool_name in self._session_allowed:
            return PermissionResult(allowed=True, reason="Always allowed for this session", risk_level=risk)

        if self.mode == PermissionMode.READ_ONLY_AUTO and self.is_read_only(tool_name):
            return PermissionResult(allowed=True, reason="Read-only tool", risk_level=risk)

        if self.approval_callback is None:
            logger.log("permissions", "NO_APPROVAL_CALLBACK", {"tool": tool_name}, "WARNING")
            return self._deny(tool_name, params, "No approval callback configured", risk,
                              requires_confirmation=True)

        pending = PendingToolCall(tool_name=tool_name, params=dict(params), risk_level=risk)
        try:
            decision = _coerce_decision(self.approval_callback(pending))
        except Exception as e:
            logger.log_error("permissions", e, {"tool": tool_name})
            return self._deny(tool_name, params, f"Approval failed: {e}", risk, requires_confirmation=True)

        if not decision.approved:
            return self._deny(tool_name, params, "User rejected", risk, requires_confirmation=True)

        if decision.always_allow:
            self._session_allowed.add(tool_name)
        return PermissionResult(allowed=True, reason="User approved", risk_level=risk, requires_confirmation=True)

    def _deny(self, tool_name: str, params: Dict[str, Any], reason: str, risk: RiskLevel,
              requires_confirmation: bool = False) -> PermissionResult:
        self.denial_log.append(PermissionDenial(
            tool_name=tool_name,
            tool_args=dict(params),
            reason=reason,
            timestamp=time.time(),
        ))
        logger.log("permissions", "PERMISSION_DENIED", {"tool": tool_name, "reason": reason}, "INFO")
        return PermissionResult(allowed=False, reason=reason, risk_level=risk,
                                requires_confirmation=requires_confirmation)

    @property
    def always_allowed_tools(self) -> List[str]:
        return sorted(self._session_allowed)

    def reset_session(self) -> None:
        """Forget every "always allow" answer given during this session."""
        self._session_allowed.clear()
        self.denial_log.clear()


def _coerce_decision(raw: Any) -> ApprovalDecision:
    if isinstance(raw, ApprovalDecision):
        return raw
    if isinstance(raw, tuple):
        approved = bool(raw[0]) if raw else False
        always = bool(raw[1]) if len(raw) > 1 else False
        return ApprovalDecision(approved=approved, always_allow=always)
    if isinstance(raw, dict):
        return ApprovalDecision(
            approved=bool(raw.get("approved")),
            always_allow=bool(raw.get("always_allow", raw.get("alwaysAllow", False))),
        )
    return ApprovalDecision(approved=bool(raw))
