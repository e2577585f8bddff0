#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for tool dispatch through the registry."""

import pytest

from revloop.models.step import ToolResult
from revloop.tools import (
    PermissionManager,
    PermissionMode,
    Tool,
    ToolContext,
    ToolParameter,
    ToolRegistry,
    build_default_registry,
    normalize_params,
)


def _recording_tool(name="echo", calls=None, read_only=False):
    calls = calls if calls is not None else []

    def execute(params, context):
        calls.append(dict(params))
        return ToolResult.ok({"echo": params.get("text")})

    return Tool(
        name=name,
        description="Echo the text back",
        parameters=[ToolParameter("text", "string", "Text to echo", required=True)],
        execute=execute,
        read_only=read_only,
    )


@pytest.fixture
def context(workspace):
    return ToolContext(workspace_root=workspace)


class TestDispatch:
    """Name resolution, validation and execution."""

    def test_trusted_call_reaches_execute(self, context):
        """Trusted mode skips the permission gate even without a callback."""
        calls = []
        registry = ToolRegistry(PermissionManager(mode=PermissionMode.CONFIRM))
        registry.register(_recording_tool(calls=calls))

        result = registry.execute_tool("echo", {"text": "hi"}, context, trusted=True)

        assert result.success
        assert result.data == {"echo": "hi"}
        assert calls == [{"text": "hi"}]

    def test_trusted_mode_manager_reaches_execute(self, context):
        calls = []
        registry = ToolRegistry(PermissionManager(mode=PermissionMode.TRUSTED))
        registry.register(_recording_tool(calls=calls))

        assert registry.execute_tool("echo", {"text": "x"}, context).success
        assert len(calls) == 1

    def test_confirm_without_callback_denies(self, context):
        calls = []
        registry = ToolRegistry(PermissionManager(mode=PermissionMode.CONFIRM))
        registry.register(_recording_tool(calls=calls))

        result = registry.execute_tool("echo", {"text": "hi"}, context)

        assert not result.success
        assert result.error == 'Permission denied: User rejected tool "echo"'
        assert calls == []

    def test_unknown_tool_suggests_close_name(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool("readfile", {"path": "a.ts"}, context)

        assert not result.success
        assert 'Did you mean "readFile"?' in result.error

    def test_unknown_tool_lists_available(self, context):
        registry = ToolRegistry(PermissionManager(mode=PermissionMode.TRUSTED))
        registry.register(_recording_tool())

        result = registry.execute_tool("teleport", {}, context)

        assert result.error == "Tool not found: teleport. Available tools: echo"

    def test_missing_required_parameters(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool("writeFile", {"path": "out.txt"}, context)

        assert not result.success
        assert result.error.startswith('Missing required parameters for "writeFile": content')

    def test_synonyms_are_normalized_before_validation(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool("readFile", {"file": "a.ts"}, context)

        assert result.success
        assert result.data == "export const a = 1;\n"

    def test_exception_becomes_failed_result(self, context):
        def explode(params, ctx):
            raise RuntimeError("boom")

        registry = ToolRegistry(PermissionManager(mode=PermissionMode.TRUSTED))
        registry.register(Tool("explode", "Always fails", [], explode))

        result = registry.execute_tool("explode", {}, context)

        assert not result.success
        assert result.error == "RuntimeError: boom"

    def test_plain_return_value_is_wrapped(self, context):
        registry = ToolRegistry(PermissionManager(mode=PermissionMode.TRUSTED))
        registry.register(Tool("answer", "Returns 42", [], lambda params, ctx: 42))

        result = registry.execute_tool("answer", {}, context)

        assert result.success and result.data == 42

    def test_path_outside_workspace_fails(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool("readFile", {"path": "../secret.txt"}, context)

        assert not result.success
        assert "Path escapes workspace" in result.error

    def test_duplicate_registration_rejected(self):
        registry = ToolRegistry()
        registry.register(_recording_tool())
        with pytest.raises(ValueError):
            registry.register(_recording_tool())


class TestBuiltinTools:
    """The default tool set works against a real workspace."""

    def test_write_then_read(self, context, workspace):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        written = registry.execute_tool("writeFile", {"path": "notes/todo.md", "content": "- ship"}, context)
        read = registry.execute_tool("readFile", {"path": "notes/todo.md"}, context)

        assert written.success
        assert written.data == {"path": "notes/todo.md", "bytes": 6}
        assert read.data == "- ship"

    def test_replace_in_file(self, context, workspace):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool(
            "replaceInFile", {"path": "config.json", "find": "verison", "replace": "version"}, context,
        )

        assert result.success
        assert '"version"' in (workspace / "config.json").read_text(encoding="utf-8")

    def test_replace_missing_text_fails(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool(
            "replaceInFile", {"path": "config.json", "find": "nope", "replace": "x"}, context,
        )

        assert not result.success
        assert "Text not found" in result.error

    def test_insert_at_line(self, context, workspace):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool(
            "insertAtLine", {"path": "src/app.py", "line": 1, "content": "import sys"}, context,
        )

        assert result.success
        assert (workspace / "src" / "app.py").read_text(encoding="utf-8").startswith("import sys\ndef main")

    def test_replace_keeps_crlf_line_endings(self, context, workspace):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))
        (workspace / "win.txt").write_bytes(b"name = 1\r\nvalue = 2\r\n")

        result = registry.execute_tool(
            "replaceInFile", {"path": "win.txt", "find": "name = 1\nvalue = 2", "replace": "name = 1\nvalue = 3"},
            context,
        )

        assert result.success
        assert (workspace / "win.txt").read_bytes() == b"name = 1\r\nvalue = 3\r\n"

    def test_insert_keeps_crlf_line_endings(self, context, workspace):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))
        (workspace / "win.txt").write_bytes(b"a\r\nb\r\n")

        result = registry.execute_tool("insertAtLine", {"path": "win.txt", "line": 2, "content": "x"}, context)

        assert result.success
        assert (workspace / "win.txt").read_bytes() == b"a\r\nx\r\nb\r\n"

    @pytest.mark.parametrize("tool, params", [
        ("replaceInFile", {"find": "value = 2", "replace": "value = 3"}),
        ("fuzzyReplace", {"search": "value = 2", "replace": "value = 3"}),
        ("insertAtLine", {"line": 1, "content": "# header"}),
    ])
    def test_non_utf8_file_is_left_untouched(self, context, workspace, tool, params):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))
        original = b"caf\xe9 = 1\r\nvalue = 2\r\n"
        (workspace / "latin1.py").write_bytes(original)

        result = registry.execute_tool(tool, dict(params, path="latin1.py"), context)

        assert not result.success
        assert "not valid UTF-8" in result.error
        assert (workspace / "latin1.py").read_bytes() == original

    def test_delete_refuses_non_empty_directory(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool("delete", {"path": "src"}, context)

        assert not result.success
        assert "not empty" in result.error

    def test_search_files(self, context):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))

        result = registry.execute_tool("searchFiles", {"pattern": "print"}, context)

        assert result.success
        assert "src/app.py" in result.as_text()

    def test_mutating_and_listing(self):
        registry = build_default_registry()

        assert registry.is_mutating("writeFile")
        assert registry.is_mutating("fuzzyReplace")
        assert not registry.is_mutating("readFile")
        assert "readFile" in registry
        assert "readFile:" in registry.describe_tools()
        assert all(schema["type"] == "function" for schema in registry.tools_for_prompt())


class TestNormalization:
    """Parameter synonym handling."""

    def test_canonical_name_wins(self):
        params = normalize_params("readFile", {"path": "a.py", "file": "b.py"})
        assert params["path"] == "a.py"

    def test_arguments_wrapper_is_unwrapped(self):
        params = normalize_params("runCommand", {"arguments": {"cmd": "ls"}})
        assert params == {"command": "ls"}

    def test_unknown_tool_passes_through(self):
        assert normalize_params("custom", {"x": 1}) == {"x": 1}
