#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Prompt assembly and context-window management for the agent loop.

Token counts are estimated at four characters per token, which is close
enough for budgeting without a tokenizer dependency.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from revloop import config
from revloop.models.step import ToolResult


Message = Dict[str, str]

RESULT_SEPARATOR = "\n\n---\n\n"
CONTINUATION_PROMPT = (
    "Continue with the task. If more tools are needed, call them. "
    "If the task is complete, provide a final summary."
)
HISTORY_TRUNCATED_MARKER = "...(older content truncated)...\n"
CONTEXT_TRIMMED_MARKER = "...(earlier context trimmed)...\n"
TRUNCATED_SUFFIX = "...(truncated)"
MIN_PARTIAL_TOKENS = 100

SYSTEM_PROMPT_TEMPLATE = """You are an autonomous coding agent working inside a project workspace.
You can read, write and execute code to complete tasks.

WORKSPACE: {workspace}

## RULES
1. If the user greets you or asks a general question, answer in plain text without calling tools.
2. Always read a file before modifying it.
3. Use paths relative to the workspace.
4. Prefer precise edits (replaceInFile, fuzzyReplace) over rewriting whole files.
5. If a tool fails, read the error and adjust the parameters or try another tool.
6. When the task is complete, give a short summary of what you did and do not call more tools.

## TOOL CALLING FORMAT
To call a tool, wrap a JSON object in a tool code block:

```tool
{{"name": "TOOL_NAME", "params": {{"param1": "value1"}}}}
```

After each tool call you receive the result, then decide whether to call another tool or answer.

## AVAILABLE TOOLS
{tools}"""

PLAN_MODE_PROMPT = """

## PLAN MODE
Before executing any tools, first propose a plan:
```plan
{"title": "Brief description of the task", "steps": [{"description": "What to do", "tool": "toolName"}]}
```
The plan is shown to the user for approval before anything runs."""


def estimate_tokens(text: Optional[str]) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Keep the beginning of ``text`` within ``max_tokens``."""
    if not text or estimate_tokens(text) <= max_tokens:
        return text or ""
    return text[:max(max_tokens, 0) * 4] + TRUNCATED_SUFFIX


def truncate_result(text: str, max_chars: int = config.MAX_TOOL_RESULT_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + f"\n...(truncated, {len(text) - max_chars} more characters)..."


def format_tool_result(name: str, result: ToolResult, max_chars: int = config.MAX_TOOL_RESULT_CHARS) -> str:
    """Render one tool outcome for the combined observation message."""
    body = truncate_result(result.as_text() if result.success else f"Error: {result.error}", max_chars)
    status = "succeeded" if result.success else "failed"
    return f'Tool "{name}" {status}.\nResult:\n{body}'


def combine_tool_results(rendered: Sequence[str]) -> str:
    return RESULT_SEPARATOR.join(rendered) + "\n\n" + CONTINUATION_PROMPT


def build_system_prompt(tools_description: str, workspace: str = "", plan_mode: bool = False) -> str:
    prompt = SYSTEM_PROMPT_TEMPLATE.format(workspace=workspace or "Not set", tools=tools_description)
    if plan_mode:
        prompt += PLAN_MODE_PROMPT
    return prompt


@dataclass
class ContextBudget:
    """Token budget of the model's context window."""
    context_window: int = config.CONTEXT_WINDOW_TOKENS
    response_buffer: int = config.RESPONSE_TOKEN_BUFFER
    safety_margin: int = config.CONTEXT_SAFETY_MARGIN

    @property
    def max_prompt_tokens(self) -> int:
        return self.context_window - self.response_buffer - self.safety_margin


def _history_role(role: str) -> str:
    return "assistant" if role == "tool" else role


def build_messages(
    system_prompt: str,
    history: Optional[Sequence[Message]],
    instruction: str,
    budget: Optional[ContextBudget] = None,
) -> List[Message]:
    """System prompt, as much prior transcript as fits, then the instruction.

    History is taken newest first; the first message that does not fit is
    truncated when at least ``MIN_PARTIAL_TOKENS`` remain, and everything
    older is dropped.
    """
    budget = budget or ContextBudget()
    system_tokens = estimate_tokens(system_prompt)
    available = budget.max_prompt_tokens - system_tokens - estimate_tokens(instruction)

    if available < 0:
        limit = budget.context_window - system_tokens - 500
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": truncate_to_tokens(instruction, limit)},
        ]

    selected: List[Message] = []
    for message in reversed(list(history or [])):
        content = message.get("content", "")
        tokens = estimate_tokens(content)
        role = _history_role(message.get("role", "user"))
        if tokens <= available:
            selected.append({"role": role, "content": content})
            available -= tokens
            continue
        if available > MIN_PARTIAL_TOKENS:
            selected.append({
                "role": role,
                "content": HISTORY_TRUNCATED_MARKER + truncate_to_tokens(content, available),
            })
        break

    selected.reverse()
    return [{"role": "system", "content": system_prompt}, *selected, {"role": "user", "content": instruction}]


def trim_to_context_window(messages: List[Message], budget: Optional[ContextBudget] = None) -> List[Message]:
    """Fit a conversation into the prompt budget.

    The system prompt (first message) always stays. The oldest other messages
    are dropped while more than two remain, then the oldest survivor is
    hard-truncated if the total is still over budget.
    """
    budget = budget or ContextBudget()
    max_tokens = budget.max_prompt_tokens
    total = sum(estimate_tokens(m.get("content")) for m in messages)
    if total <= max_tokens or not messages:
        return messages

    system, rest = messages[0], list(messages[1:])
    while total > max_tokens and len(rest) > 2:
        removed = rest.pop(0)
        total -= estimate_tokens(removed.get("content"))

    if total > max_tokens and rest:
        oldest = rest[0]
        keep = max(estimate_tokens(oldest.get("content")) - (total - max_tokens), 0)
        rest[0] = {
            "role": oldest["role"],
            "content": CONTEXT_TRIMMED_MARKER + truncate_to_tokens(oldest.get("content", ""), keep),
        }

    return [system, *rest]
