#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Test doubles shared across the suite."""

import json
from typing import Callable, Dict, List, Optional, Union

from revloop.cancellation import CancellationToken
from revloop.llm.providers.base import GenerationOptions, InferenceBackend


Scripted = Union[str, Exception, Callable[[List[Dict[str, str]]], str]]


class ScriptedBackend(InferenceBackend):
    """Replays canned responses (or raises canned errors) in order.

    Once the script runs out, the last entry repeats.
    """

    name = "scripted"

    def __init__(self, responses: List[Scripted], stream: bool = False):
        self._model = "scripted-model"
        self.responses = list(responses)
        self.stream = stream
        self.calls: List[List[Dict[str, str]]] = []

    def generate(
        self,
        messages: List[Dict[str, str]],
        options: GenerationOptions,
        cancellation: CancellationToken,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        cancellation.raise_if_cancelled()
        self.calls.append([dict(m) for m in messages])
        entry = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(entry, Exception):
            raise entry
        text = entry(messages) if callable(entry) else entry
        if self.stream and on_token is not None:
            for word in text.split(" "):
                on_token(word + " ")
        return text


def tool_block(name: str, **params) -> str:
    """A fenced tool-call block as a model would emit it."""
    return "```tool\n" + json.dumps({"name": name, "params": params}) + "\n```"
