#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Shared fixtures: isolated state directories and a small workspace."""

from pathlib import Path

import pytest

from revloop import config


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Point the persistent state directories at a per-test temp dir."""
    state = tmp_path / ".revloop"
    monkeypatch.setattr(config, "REVLOOP_DIR", state)
    monkeypatch.setattr(config, "LOGS_DIR", state / "logs")
    monkeypatch.setattr(config, "MEMORY_DIR", state / "memory")
    monkeypatch.setattr(config, "PERMISSION_POLICY_FILE", state / "tool_policy.yaml")
    return state


@pytest.fixture
def workspace(tmp_path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "a.ts").write_text("export const a = 1;\n", encoding="utf-8")
    (root / "config.json").write_text('{"name": "demo", "verison": "1.0"}\n', encoding="utf-8")
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("def main():\n    print('hello')\n", encoding="utf-8")
    return root
