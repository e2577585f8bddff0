#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Fuzzy location of a search block inside file content.

Three strategies are tried in order and the first one that matches wins:

1. exact substring match
2. line-trimmed match (leading/trailing whitespace on each line ignored)
3. sliding window over lines scored by Levenshtein distance relative to the
   block length; the globally best window below ``max_distance`` is taken
"""

from dataclasses import dataclass
from typing import List, Optional


DEFAULT_MAX_DISTANCE = 0.15


@dataclass
class FuzzyMatch:
    """Character offsets of the matched region in the original content."""
    start: int
    end: int
    distance: float
    strategy: str

    def apply(self, content: str, replacement: str) -> str:
        return content[:self.start] + replacement + content[self.end:]


def levenshtein(a: str, b: str) -> int:
    """Edit distance using a two-row dynamic programme."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _line_offsets(lines: List[str]) -> List[int]:
    """Start offset of each line when joined with newlines."""
    offsets = []
    pos = 0
    for line in lines:
        offsets.append(pos)
        pos += len(line) + 1
    return offsets


def _span(lines: List[str], offsets: List[int], first: int, count: int) -> tuple:
    start = offsets[first]
    last = first + count - 1
    end = offsets[last] + len(lines[last])
    return start, end


def _normalize_lines(lines: List[str]) -> str:
    return "\n".join(line.strip() for line in lines)


def fuzzy_find(content: str, search: str, max_distance: float = DEFAULT_MAX_DISTANCE) -> Optional[FuzzyMatch]:
    """Locate ``search`` in ``content``; None when no strategy matches."""
    if not search:
        return None

    index = content.find(search)
    if index != -1:
        return FuzzyMatch(start=index, end=index + len(search), distance=0.0, strategy="exact")

    content_lines = content.split("\n")
    search_lines = search.strip("\n").split("\n")
    window = len(search_lines)
    if window == 0 or window > len(content_lines):
        return None

    offsets = _line_offsets(content_lines)
    normalized_search = _normalize_lines(search_lines)

    for i in range(len(content_lines) - window + 1):
        if _normalize_lines(content_lines[i:i + window]) == normalized_search:
            start, end = _span(content_lines, offsets, i, window)
            return FuzzyMatch(start=start, end=end, distance=0.0, strategy="normalized")

    if not normalized_search:
        return None

    best: Optional[FuzzyMatch] = None
    for i in range(len(content_lines) - window + 1):
        candidate = _normalize_lines(content_lines[i:i + window])
        relative = levenshtein(candidate, normalized_search) / len(normalized_search)
        if relative < max_distance and (best is None or relative < best.distance):
            start, end = _span(content_lines, offsets, i, window)
            best = FuzzyMatch(start=start, end=end, distance=relative, strategy="levenshtein")
            if relative == 0:
                break
    return best
