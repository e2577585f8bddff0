#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""File operation tools confined to the workspace root."""

import fnmatch
import os
import pathlib
import re
from datetime import datetime
from typing import Any, Dict, List

from revloop import config
from revloop.models.step import ToolResult
from revloop.tools.base import ToolContext
from revloop.tools.fuzzy import fuzzy_find


def _safe_path(rel: str, context: ToolContext) -> pathlib.Path:
    """Resolve a path safely within the workspace root.

    Raises:
        ValueError: If path escapes the workspace root
    """
    root = context.workspace_root.resolve()
    candidate = pathlib.Path(str(rel)).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    if resolved != root and root not in resolved.parents:
        raise ValueError(f"Path escapes workspace: {rel}")
    return resolved


def _rel_to_root(path: pathlib.Path, context: ToolContext) -> str:
    root = context.workspace_root.resolve()
    try:
        rel = path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
    return rel or "."


def _is_text_file(path: pathlib.Path) -> bool:
    try:
        with open(path, "rb") as f:
            return b"\x00" not in f.read(8192)
    except OSError:
        return False


def _iter_files(base: pathlib.Path, file_pattern: str = None):
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if d not in config.EXCLUDE_DIRS)
        for name in sorted(filenames):
            if file_pattern and not fnmatch.fnmatch(name, file_pattern):
                continue
            yield pathlib.Path(dirpath) / name


def read_file(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if not p.exists():
        return ToolResult.fail(f"File not found: {params['path']}")
    if p.is_dir():
        return ToolResult.fail(f"Path is a directory, use listDirectory: {params['path']}")
    if p.stat().st_size > config.MAX_FILE_BYTES:
        return ToolResult.fail(f"File too large (> {config.MAX_FILE_BYTES} bytes): {params['path']}")
    return ToolResult.ok(p.read_text(encoding="utf-8", errors="replace"))


def write_file(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    content = str(params["content"])
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return ToolResult.ok({"path": _rel_to_root(p, context), "bytes": len(content.encode("utf-8"))})


def create_file(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if p.exists():
        return ToolResult.fail(f"File already exists: {params['path']}")
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(str(params.get("content", "")), encoding="utf-8")
    return ToolResult.ok({"created": _rel_to_root(p, context)})


def create_directory(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    p.mkdir(parents=True, exist_ok=True)
    return ToolResult.ok({"created": _rel_to_root(p, context)})


def delete_path(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if p == context.workspace_root.resolve():
        return ToolResult.fail("Refusing to delete the workspace root")
    if not p.exists():
        return ToolResult.fail(f"Not found: {params['path']}")
    if p.is_dir():
        if any(p.iterdir()):
            return ToolResult.fail(f"Directory is not empty: {params['path']}")
        p.rmdir()
    else:
        p.unlink()
    return ToolResult.ok({"deleted": _rel_to_root(p, context)})


def list_directory(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params.get("path") or ".", context)
    if not p.is_dir():
        return ToolResult.fail(f"Not a directory: {params.get('path')}")
    limit = int(params.get("limit", config.LIST_LIMIT))
    offset = int(params.get("offset", 0))

    children = sorted(p.iterdir(), key=lambda c: (not c.is_dir(), c.name.lower()))
    entries = [
        {"name": child.name, "type": "dir" if child.is_dir() else "file"}
        for child in children
        if child.name not in config.EXCLUDE_DIRS
    ]
    page = entries[offset:offset + limit]
    return ToolResult.ok({
        "path": _rel_to_root(p, context),
        "total": len(entries),
        "offset": offset,
        "entries": page,
        "has_more": offset + limit < len(entries),
    })


def get_file_tree(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    base = _safe_path(params.get("path") or ".", context)
    if not base.is_dir():
        return ToolResult.fail(f"Not a directory: {params.get('path')}")
    max_depth = int(params.get("depth", 3))
    lines: List[str] = []

    def walk(directory: pathlib.Path, depth: int, prefix: str):
        if depth > max_depth or len(lines) >= 500:
            return
        try:
            children = sorted(directory.iterdir(), key=lambda c: (not c.is_dir(), c.name.lower()))
        except OSError:
            return
        for child in children:
            if child.name in config.EXCLUDE_DIRS:
                continue
            if child.is_dir():
                lines.append(f"{prefix}{child.name}/")
                walk(child, depth + 1, prefix + "  ")
            else:
                lines.append(f"{prefix}{child.name}")

    walk(base, 1, "")
    return ToolResult.ok("\n".join(lines) if lines else "(empty)")


def file_stats(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if not p.exists():
        return ToolResult.fail(f"Not found: {params['path']}")
    st = p.stat()
    return ToolResult.ok({
        "path": _rel_to_root(p, context),
        "type": "directory" if p.is_dir() else "file",
        "size": st.st_size,
        "modified": datetime.fromtimestamp(st.st_mtime).isoformat(),
    })


def search_files(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    base = _safe_path(params.get("path") or ".", context)
    raw = str(params["pattern"])
    try:
        regex = re.compile(raw)
    except re.error:
        regex = re.compile(re.escape(raw))
    file_pattern = params.get("filePattern")
    max_results = int(params.get("maxResults", 100))

    matches = []
    for path in _iter_files(base, file_pattern):
        if context.cancellation.is_cancelled or len(matches) >= max_results:
            break
        if not _is_text_file(path):
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue
        for lineno, line in enumerate(text.splitlines(), 1):
            if regex.search(line):
                matches.append(f"{_rel_to_root(path, context)}:{lineno}: {line.strip()[:200]}")
                if len(matches) >= max_results:
                    break

    if not matches:
        return ToolResult.ok(f"No matches for {raw!r}")
    return ToolResult.ok("\n".join(matches))


_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]{2,}")


def search_relevant_context(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    """Keyword-scored lookup of files relevant to a free-text query."""
    terms = {t.lower() for t in _WORD_RE.findall(str(params["query"]))}
    if not terms:
        return ToolResult.fail("Query has no searchable terms")
    limit = int(params.get("limit", 10))

    scored = []
    for path in _iter_files(context.workspace_root.resolve()):
        if context.cancellation.is_cancelled:
            break
        if not _is_text_file(path) or path.stat().st_size > config.MAX_FILE_BYTES:
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue
        lowered = text.lower()
        name = path.name.lower()
        score = sum(lowered.count(t) + (5 if t in name else 0) for t in terms)
        if score == 0:
            continue
        snippet = ""
        for line in text.splitlines():
            if any(t in line.lower() for t in terms):
                snippet = line.strip()[:160]
                break
        scored.append((score, _rel_to_root(path, context), snippet))

    scored.sort(key=lambda item: (-item[0], item[1]))
    if not scored:
        return ToolResult.ok("No relevant files found")
    return ToolResult.ok("\n".join(f"{rel} (score {score}): {snippet}" for score, rel, snippet in scored[:limit]))


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


# In-place edits keep the file's bytes: strict UTF-8 and untranslated newlines.

def _read_exact(p: pathlib.Path) -> str:
    with open(p, encoding="utf-8", newline="") as f:
        return f.read()


def _write_exact(p: pathlib.Path, content: str) -> None:
    with open(p, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def _line_ending(content: str) -> str:
    return "\r\n" if "\r\n" in content else "\n"


def _with_line_ending(text: str, eol: str) -> str:
    if eol == "\n":
        return text
    return text.replace("\r\n", "\n").replace("\n", eol)


def _not_utf8(path: str) -> ToolResult:
    return ToolResult.fail(f"{path} is not valid UTF-8 text; refusing to edit it in place. Use writeFile to replace it.")


def replace_in_file(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    find = str(params["find"])
    if not find:
        return ToolResult.fail("find parameter cannot be empty")
    p = _safe_path(params["path"], context)
    if not p.exists():
        return ToolResult.fail(f"File not found: {params['path']}")
    try:
        content = _read_exact(p)
    except UnicodeDecodeError:
        return _not_utf8(params["path"])
    eol = _line_ending(content)
    find = _with_line_ending(find, eol)
    count = content.count(find)
    if count == 0:
        return ToolResult.fail(f"Text not found in {params['path']}. Use readFile to check the exact content or try fuzzyReplace.")

    replace = _with_line_ending(str(params.get("replace", "")), eol)
    if _as_bool(params.get("replaceAll", False)):
        new_content = content.replace(find, replace)
        replaced = count
    else:
        new_content = content.replace(find, replace, 1)
        replaced = 1
    _write_exact(p, new_content)
    return ToolResult.ok({"path": _rel_to_root(p, context), "replaced": replaced})


def fuzzy_replace(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if not p.exists():
        return ToolResult.fail(f"File not found: {params['path']}")
    try:
        content = _read_exact(p)
    except UnicodeDecodeError:
        return _not_utf8(params["path"])
    eol = _line_ending(content)
    match = fuzzy_find(content, _with_line_ending(str(params["search"]), eol))
    if match is None:
        return ToolResult.fail(f"Could not find a close enough match in {params['path']}")
    _write_exact(p, match.apply(content, _with_line_ending(str(params["replace"]), eol)))
    return ToolResult.ok({
        "path": _rel_to_root(p, context),
        "strategy": match.strategy,
        "distance": round(match.distance, 4),
    })


def insert_at_line(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if not p.exists():
        return ToolResult.fail(f"File not found: {params['path']}")
    try:
        line = int(params["line"])
    except (TypeError, ValueError):
        return ToolResult.fail(f"Invalid line number: {params['line']!r}")
    try:
        content = _read_exact(p)
    except UnicodeDecodeError:
        return _not_utf8(params["path"])
    eol = _line_ending(content)
    lines = content.split(eol)
    if line < 1 or line > len(lines) + 1:
        return ToolResult.fail(f"Line {line} out of range (1-{len(lines) + 1})")
    lines[line - 1:line - 1] = _with_line_ending(str(params["content"]), eol).split(eol)
    _write_exact(p, eol.join(lines))
    return ToolResult.ok({"path": _rel_to_root(p, context), "inserted_at": line})
