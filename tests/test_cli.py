#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for the command line entry point."""

import pytest

import revloop.main as cli
from revloop import config
from revloop.events import EventEmitter, EventType
from revloop.llm import ErrorClass, InferenceError
from revloop.tools import PermissionMode
from revloop.tools.permissions import risk_level_for

from helpers import ScriptedBackend, tool_block


@pytest.fixture
def use_backend(monkeypatch, workspace):
    monkeypatch.setattr(config, "ROOT", workspace)

    def install(backend):
        monkeypatch.setattr(cli, "create_backend", lambda provider, model: backend)
        return backend

    return install


class TestMain:
    def test_missing_task_prints_help(self, capsys):
        assert cli.main([]) == 2
        assert "usage" in capsys.readouterr().out

    def test_backend_configuration_error(self, monkeypatch, capsys):
        def broken(provider, model):
            raise ValueError("Unknown provider: nope")

        monkeypatch.setattr(cli, "create_backend", broken)

        assert cli.main(["hello"]) == 2
        assert "Error: Unknown provider: nope" in capsys.readouterr().err

    def test_answer_is_printed(self, use_backend, capsys):
        backend = use_backend(ScriptedBackend(["Hi there."]))

        assert cli.main(["--no-stream", "say", "hello"]) == 0

        assert "Hi there." in capsys.readouterr().out
        assert backend.calls[0][-1]["content"] == "say hello"

    def test_trusted_tool_run_persists_confidence(self, use_backend, capsys, isolated_state):
        use_backend(ScriptedBackend([tool_block("readFile", path="a.ts"), "It exports a."]))

        assert cli.main(["--trusted", "--no-stream", "what", "is", "in", "a.ts"]) == 0

        out = capsys.readouterr().out
        assert "-> readFile" in out
        assert "It exports a." in out
        assert (isolated_state / "memory" / "tool_confidence.json").exists()

    def test_inference_failure_exits_nonzero(self, use_backend, capsys):
        use_backend(ScriptedBackend([InferenceError("bad key", ErrorClass.AUTH_ERROR)]))

        assert cli.main(["--no-stream", "hello"]) == 1
        assert "Error: bad key" in capsys.readouterr().out

    def test_goal_driven_summary(self, use_backend, capsys):
        use_backend(ScriptedBackend(["Nothing to fix."]))

        assert cli.main(["--goal-driven", "--no-stream", "fix the typo in config.json"]) == 0

        out = capsys.readouterr().out
        assert "Nothing to fix." in out
        assert "[success] 1 iterations, 1 steps, 0 cache hits" in out


class TestPermissions:
    def test_access_flags(self):
        parser = cli.build_parser()

        assert cli.build_permissions(parser.parse_args(["x"])).mode == PermissionMode.CONFIRM
        assert cli.build_permissions(parser.parse_args(["--trusted", "x"])).mode == PermissionMode.TRUSTED
        assert cli.build_permissions(parser.parse_args(["--read-only", "x"])).mode == PermissionMode.READ_ONLY_AUTO

    def test_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--trusted", "--read-only", "x"])

    @pytest.mark.parametrize("answer,approved,always", [
        ("y", True, False),
        ("yes", True, False),
        ("a", True, True),
        ("", False, False),
        ("n", False, False),
    ])
    def test_terminal_approval(self, monkeypatch, answer, approved, always):
        monkeypatch.setattr("builtins.input", lambda prompt="": answer)
        call = cli.PendingToolCall("writeFile", {"path": "a.ts"}, risk_level_for("writeFile"))

        decision = cli.prompt_for_approval(call)

        assert (decision.approved, decision.always_allow) == (approved, always)

    def test_closed_stdin_denies(self, monkeypatch):
        def closed(prompt=""):
            raise EOFError

        monkeypatch.setattr("builtins.input", closed)
        call = cli.PendingToolCall("delete", {"path": "a.ts"}, risk_level_for("delete"))

        assert not cli.prompt_for_approval(call).approved


def test_console_reporter(capsys):
    emitter = EventEmitter()
    emitter.subscribe(cli.ConsoleReporter(stream=True))

    emitter.emit(EventType.STREAMING, "run-1", token="Hel")
    emitter.emit(EventType.STREAMING, "run-1", token="lo")
    emitter.emit(EventType.TOOL_EXECUTING, "run-1", tool="readFile", params={})
    emitter.emit(EventType.FILE_MODIFIED, "run-1", path="a.ts")

    assert capsys.readouterr().out == "Hello\n-> readFile\n   modified a.ts\n"
