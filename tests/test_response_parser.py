#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for model response parsing."""

from revloop.llm import (
    PlainText,
    Plan,
    ToolCalls,
    clean_content,
    extract_thinking,
    parse_plan,
    parse_response,
    parse_tool_calls,
)

from helpers import tool_block


class TestToolCallStrategies:
    """Fenced blocks, tool_code markup and bare JSON."""

    def test_fenced_blocks(self):
        text = "Let me look.\n" + tool_block("readFile", path="a.ts") + "\n" + tool_block("listDirectory", path=".")

        calls = parse_tool_calls(text)

        assert [c.name for c in calls] == ["readFile", "listDirectory"]
        assert calls[0].params == {"path": "a.ts"}

    def test_tool_code_markup_coerces_values(self):
        text = (
            "<tool_code><name>insertAtLine</name><path>a.py</path>"
            "<line>3</line><content>x = 1</content></tool_code>"
        )

        calls = parse_tool_calls(text)

        assert len(calls) == 1
        assert calls[0].name == "insertAtLine"
        assert calls[0].params == {"path": "a.py", "line": 3, "content": "x = 1"}

    def test_tool_code_booleans(self):
        text = "<tool_code><name>replaceInFile</name><replaceAll>true</replaceAll></tool_code>"
        assert parse_tool_calls(text)[0].params == {"replaceAll": True}

    def test_bare_json(self):
        text = 'I will run {"name": "runCommand", "params": {"command": "ls -la"}} now.'

        calls = parse_tool_calls(text)

        assert calls[0].name == "runCommand"
        assert calls[0].params == {"command": "ls -la"}

    def test_fenced_wins_over_bare_json(self):
        text = tool_block("readFile", path="a.ts") + '\n{"name": "delete", "params": {"path": "a.ts"}}'

        calls = parse_tool_calls(text)

        assert [c.name for c in calls] == ["readFile"]

    def test_malformed_candidates_are_skipped(self):
        text = "```tool\n{not json}\n```\n```tool\n{\"name\": \"readFile\"}\n```"
        assert parse_tool_calls(text) == []

    def test_no_calls(self):
        assert parse_tool_calls("Nothing to do here.") == []


class TestPlans:
    """Plan blocks are only honoured in plan mode."""

    def test_json_plan(self):
        text = '<plan>{"title": "Fix config", "steps": [{"description": "Read config", "tool": "readFile"}, "Fix typo"]}</plan>'

        plan = parse_plan(text)

        assert plan.title == "Fix config"
        assert [s.description for s in plan.steps] == ["Read config", "Fix typo"]
        assert plan.steps[0].tool == "readFile"

    def test_numbered_lines_plan(self):
        text = "```plan\n1. Read the file\n2. Edit the file\n```"

        plan = parse_plan(text)

        assert plan.title == "Execution Plan"
        assert [s.description for s in plan.steps] == ["Read the file", "Edit the file"]
        assert "1. Read the file" in plan.format()

    def test_json_without_steps_is_rejected(self):
        assert parse_plan('<plan>{"title": "x"}</plan>') is None

    def test_plan_only_in_plan_mode(self):
        text = "<plan>\n1. Do it\n</plan>"

        assert isinstance(parse_response(text, plan_mode=True), Plan)
        assert isinstance(parse_response(text, plan_mode=False), PlainText)


class TestParseResponse:
    def test_tool_calls_keep_surrounding_text(self):
        text = "<think>need the file</think>Reading it.\n" + tool_block("readFile", path="a.ts")

        parsed = parse_response(text)

        assert isinstance(parsed, ToolCalls)
        assert parsed.text == "Reading it."

    def test_plain_text_is_cleaned(self):
        parsed = parse_response("The answer is 4.<|im_end|>\nassistant")

        assert isinstance(parsed, PlainText)
        assert parsed.text == "The answer is 4."


def test_extract_thinking():
    assert extract_thinking("<thinking> step one </thinking>ok") == "step one"
    assert extract_thinking("no reasoning") is None


def test_clean_content_strips_special_tokens():
    assert clean_content("[INST]hi[/INST]<s>there</s>") == "hithere"
