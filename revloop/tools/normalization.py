#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Normalize alternate argument names that models emit for tool parameters."""

from typing import Any, Dict

from revloop.debug_logger import get_logger


logger = get_logger()

_PATH_SYNONYMS = {"filePath": "path", "file_path": "path", "file": "path", "filename": "path"}

# tool name -> {alternate name: canonical name}
PARAM_SYNONYMS: Dict[str, Dict[str, str]] = {
    "readFile": dict(_PATH_SYNONYMS),
    "writeFile": {**_PATH_SYNONYMS, "text": "content", "data": "content", "contents": "content"},
    "listDirectory": {"directory": "path", "dir": "path", "folder": "path"},
    "createFile": {**_PATH_SYNONYMS, "name": "path"},
    "createDirectory": {"directory": "path", "dir": "path", "folder": "path", "name": "path"},
    "delete": {**_PATH_SYNONYMS, "target": "path"},
    "executeCode": {
        "lang": "language",
        "runtime": "language",
        "script": "code",
        "source": "code",
        "workingDirectory": "cwd",
        "workDir": "cwd",
    },
    "runFile": dict(_PATH_SYNONYMS),
    "runCommand": {"cmd": "command", "shell": "command", "workingDirectory": "cwd", "workDir": "cwd"},
    "gitStatus": {"path": "repoPath", "repository": "repoPath", "repo": "repoPath"},
    "searchFiles": {
        "query": "pattern",
        "search": "pattern",
        "text": "pattern",
        "regex": "pattern",
        "glob": "filePattern",
        "filter": "filePattern",
    },
    "searchRelevantContext": {"pattern": "query", "search": "query", "text": "query"},
    "getFileTree": {"directory": "path", "dir": "path", "maxDepth": "depth"},
    "replaceInFile": {
        **_PATH_SYNONYMS,
        "search": "find",
        "pattern": "find",
        "searchText": "find",
        "findText": "find",
        "oldText": "find",
        "old": "find",
        "old_string": "find",
        "newText": "replace",
        "new": "replace",
        "new_string": "replace",
        "replacement": "replace",
        "text": "replace",
        "all": "replaceAll",
        "global": "replaceAll",
        "replaceAllOccurrences": "replaceAll",
    },
    "insertAtLine": {
        **_PATH_SYNONYMS,
        "lineNumber": "line",
        "at": "line",
        "text": "content",
        "insert": "content",
    },
    "fileStats": dict(_PATH_SYNONYMS),
    "fuzzyReplace": {
        **_PATH_SYNONYMS,
        "find": "search",
        "searchBlock": "search",
        "searchText": "search",
        "old": "search",
        "oldText": "search",
        "replaceBlock": "replace",
        "replaceText": "replace",
        "new": "replace",
        "newText": "replace",
    },
    "gitDiff": {**_PATH_SYNONYMS, "onlyStaged": "staged", "cachedOnly": "staged"},
    "gitLog": {"limit": "count", "max": "count", "n": "count"},
    "gitAdd": {"paths": "files", "filePaths": "files", "file": "files"},
    "gitCommit": {"msg": "message", "commitMessage": "message"},
}


def unwrap_arguments(params: Any) -> Dict[str, Any]:
    """Strip ``{"arguments": {...}}`` style wrappers some models add."""
    if not isinstance(params, dict):
        return {}
    while len(params) == 1:
        inner = params.get("arguments", params.get("params", params.get("parameters")))
        if not isinstance(inner, dict):
            break
        params = inner
    return params


def normalize_params(tool_name: str, params: Any) -> Dict[str, Any]:
    """Return a copy of ``params`` with synonyms renamed to canonical names.

    A synonym is only renamed when the canonical name is absent, so an
    explicit canonical argument always wins.
    """
    normalized = dict(unwrap_arguments(params))
    mappings = PARAM_SYNONYMS.get(tool_name)
    if not mappings:
        return normalized

    for wrong_name, correct_name in mappings.items():
        if wrong_name in normalized and correct_name not in normalized:
            normalized[correct_name] = normalized.pop(wrong_name)
            logger.log("tools", "PARAM_NORMALIZED", {
                "tool": tool_name,
                "from": wrong_name,
                "to": correct_name,
            }, "DEBUG")
    return normalized
