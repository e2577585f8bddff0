"""Parse raw model responses into plain text, a plan, or tool calls.

Tool calls are recognised in three encodings, tried in order; the first
strategy that yields at least one call wins:

1. fenced ```` ```tool ```` blocks holding ``{"name": ..., "params": {...}}``
2. ``<tool_code>`` markup with a ``<name>`` tag and one tag per parameter
3. a scan for bare ``{"name": "...", "params": ...}`` JSON objects

Every strategy returns a definite (possibly empty) list; malformed candidates
are skipped, never raised.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from revloop.models.step import ToolCall


_THINK_PATTERNS = [
    re.compile(r"<think>([\s\S]*?)</think>", re.IGNORECASE),
    re.compile(r"<thinking>([\s\S]*?)</thinking>", re.IGNORECASE),
]
_TOOL_BLOCK = re.compile(r"```tool\s*\n?(\{[\s\S]*?\})\s*\n?```", re.IGNORECASE)
_TOOL_CODE = re.compile(r"<tool_code>([\s\S]*?)</tool_code>", re.IGNORECASE)
_TOOL_CODE_NAME = re.compile(r"<name>([\s\S]*?)</name>", re.IGNORECASE)
_TOOL_CODE_PARAM = re.compile(r"<(\w+)>([\s\S]*?)</\1>", re.IGNORECASE)
_BARE_CALL_START = re.compile(r"\{\s*\"name\"\s*:\s*\"([\w.-]+)\"\s*,\s*\"params\"\s*:")
_PLAN_PATTERNS = [
    re.compile(r"<plan>([\s\S]*?)</plan>", re.IGNORECASE),
    re.compile(r"```plan\s*\n([\s\S]*?)\n```", re.IGNORECASE),
]
_NUMBERED_PREFIX = re.compile(r"^\s*(?:\d+[.)]|[-*])\s*")

_STRIP_PATTERNS = [
    re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE),
    re.compile(r"<thinking>[\s\S]*?</thinking>", re.IGNORECASE),
    re.compile(r"```tool[\s\S]*?```", re.IGNORECASE),
    re.compile(r"<tool_code>[\s\S]*?</tool_code>", re.IGNORECASE),
    re.compile(r"<\|im_end\|>|<\|im_start\|>|<\|end_of_text\|>|</s>|<s>|\[INST\]|\[/INST\]"),
]
_TRAILING_ROLE = re.compile(r"\n?(user|assistant|system)\s*$", re.IGNORECASE)

DEFAULT_PLAN_TITLE = "Execution Plan"


@dataclass
class PlanStep:
    description: str
    tool: Optional[str] = None
    status: str = "pending"

    def to_dict(self) -> Dict[str, Any]:
        return {"description": self.description, "tool": self.tool, "status": self.status}


@dataclass
class Plan:
    title: str
    steps: List[PlanStep]
    id: str = field(default_factory=lambda: f"plan_{uuid.uuid4().hex[:10]}")
    status: str = "proposed"

    def format(self) -> str:
        lines = [f"**{self.title}**", ""]
        for i, step in enumerate(self.steps, 1):
            suffix = f" (`{step.tool}`)" if step.tool else ""
            lines.append(f"{i}. {step.description}{suffix}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class PlainText:
    text: str


@dataclass
class ToolCalls:
    calls: List[ToolCall]
    text: str = ""


ParsedResponse = Union[PlainText, Plan, ToolCalls]


def extract_thinking(response: str) -> Optional[str]:
    """Content of the first ``<think>``/``<thinking>`` block, if any."""
    for pattern in _THINK_PATTERNS:
        match = pattern.search(response)
        if match:
            return match.group(1).strip()
    return None


def clean_content(response: str) -> str:
    """Strip reasoning blocks, tool blocks, special tokens and trailing role markers."""
    text = response
    for pattern in _STRIP_PATTERNS:
        text = pattern.sub("", text)
    text = _TRAILING_ROLE.sub("", text)
    return text.strip()


def parse_plan(response: str) -> Optional[Plan]:
    """Extract a ``<plan>`` or ```` ```plan ```` block.

    JSON bodies need a ``title`` and a ``steps`` list; anything else is read
    as one step per non-empty line under the default title.
    """
    body = None
    for pattern in _PLAN_PATTERNS:
        match = pattern.search(response)
        if match:
            body = match.group(1)
            break
    if body is None:
        return None

    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        if parsed.get("title") and isinstance(parsed.get("steps"), list):
            steps = []
            for item in parsed["steps"]:
                if isinstance(item, dict):
                    steps.append(PlanStep(
                        description=str(item.get("description") or item.get("name") or item),
                        tool=item.get("tool") or item.get("name"),
                    ))
                else:
                    steps.append(PlanStep(description=str(item)))
            return Plan(title=str(parsed["title"]), steps=steps)
        return None

    lines = [line.strip() for line in body.splitlines() if line.strip()]
    if not lines:
        return None
    return Plan(
        title=DEFAULT_PLAN_TITLE,
        steps=[PlanStep(description=_NUMBERED_PREFIX.sub("", line).strip()) for line in lines],
    )


def _coerce_tag_value(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if value.isdigit():
        return int(value)
    return value


def _valid_call(obj: Any) -> Optional[ToolCall]:
    if not isinstance(obj, dict):
        return None
    name, params = obj.get("name"), obj.get("params")
    if not name or not isinstance(name, str) or not isinstance(params, dict):
        return None
    return ToolCall(name=name.strip(), params=params)


def _parse_fenced(response: str) -> List[ToolCall]:
    calls = []
    for match in _TOOL_BLOCK.finditer(response):
        try:
            call = _valid_call(json.loads(match.group(1)))
        except ValueError:
            continue
        if call:
            calls.append(call)
    return calls


def _parse_tool_code(response: str) -> List[ToolCall]:
    calls = []
    for match in _TOOL_CODE.finditer(response):
        body = match.group(1)
        name = _TOOL_CODE_NAME.search(body)
        if not name or not name.group(1).strip():
            continue
        params = {
            tag: _coerce_tag_value(value.strip())
            for tag, value in _TOOL_CODE_PARAM.findall(body)
            if tag.lower() != "name"
        }
        calls.append(ToolCall(name=name.group(1).strip(), params=params))
    return calls


def _parse_bare_json(response: str) -> List[ToolCall]:
    decoder = json.JSONDecoder()
    calls = []
    pos = 0
    while True:
        match = _BARE_CALL_START.search(response, pos)
        if not match:
            break
        try:
            obj, end = decoder.raw_decode(response, match.start())
        except ValueError:
            pos = match.end()
            continue
        call = _valid_call(obj)
        if call:
            calls.append(call)
        pos = end
    return calls


TOOL_CALL_STRATEGIES: List[Callable[[str], List[ToolCall]]] = [
    _parse_fenced,
    _parse_tool_code,
    _parse_bare_json,
]


def parse_tool_calls(response: str) -> List[ToolCall]:
    """Tool calls from the first strategy that finds any."""
    for strategy in TOOL_CALL_STRATEGIES:
        calls = strategy(response)
        if calls:
            return calls
    return []


def parse_response(response: str, plan_mode: bool = False) -> ParsedResponse:
    """Classify a model response.

    Returns a ``Plan`` only in plan mode, ``ToolCalls`` when any encoding
    matched, and ``PlainText`` with the cleaned text otherwise.
    """
    if plan_mode:
        plan = parse_plan(response)
        if plan is not None:
            return plan

    calls = parse_tool_calls(response)
    text = clean_content(response)
    if calls:
        return ToolCalls(calls=calls, text=text)
    return PlainText(text=text)
