#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Configuration constants and settings for revloop."""

import os
import pathlib


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


# Workspace
ROOT = pathlib.Path(os.getcwd()).resolve()
REVLOOP_DIR = ROOT / ".revloop"
LOGS_DIR = REVLOOP_DIR / "logs"
MEMORY_DIR = REVLOOP_DIR / "memory"
PERMISSION_POLICY_FILE = pathlib.Path(
    os.getenv("REVLOOP_POLICY_FILE", str(REVLOOP_DIR / "tool_policy.yaml"))
)
LOG_RETENTION_LIMIT = _env_int("REVLOOP_LOG_RETENTION", 20)

# Orchestration loop
MAX_ITERATIONS = _env_int("REVLOOP_MAX_ITERATIONS", 25)
MAX_DURATION_SECONDS = _env_float("REVLOOP_MAX_DURATION", 600.0)
MAX_TOOL_RESULT_CHARS = _env_int("REVLOOP_MAX_TOOL_RESULT_CHARS", 4000)
CONTEXT_WINDOW_TOKENS = _env_int("REVLOOP_CONTEXT_WINDOW", 32768)
RESPONSE_TOKEN_BUFFER = _env_int("REVLOOP_RESPONSE_BUFFER", 4096)
CONTEXT_SAFETY_MARGIN = _env_int("REVLOOP_CONTEXT_SAFETY", 1000)
GENERATION_TEMPERATURE = _env_float("REVLOOP_TEMPERATURE", 0.3)
GENERATION_MAX_TOKENS = _env_int("REVLOOP_MAX_TOKENS", 4096)

# Inference retry policy
INFERENCE_MAX_ATTEMPTS = _env_int("REVLOOP_INFERENCE_ATTEMPTS", 3)
INFERENCE_BASE_BACKOFF = _env_float("REVLOOP_INFERENCE_BACKOFF", 1.0)
INFERENCE_MAX_BACKOFF = _env_float("REVLOOP_INFERENCE_MAX_BACKOFF", 30.0)
INFERENCE_TIMEOUT_SECONDS = _env_float("REVLOOP_INFERENCE_TIMEOUT", 600.0)

# Iteration budget
BUDGET_BASE = _env_int("REVLOOP_BUDGET_BASE", 25)
BUDGET_MIN = _env_int("REVLOOP_BUDGET_MIN", 5)
BUDGET_MAX = _env_int("REVLOOP_BUDGET_MAX", 50)
BUDGET_BONUS_THRESHOLD = _env_float("REVLOOP_BUDGET_BONUS_THRESHOLD", 0.8)
BUDGET_COMPRESSION_FACTOR = _env_float("REVLOOP_BUDGET_COMPRESSION", 0.8)

# Confidence / caching / learning
AUTO_APPROVE_THRESHOLD = _env_float("REVLOOP_AUTO_APPROVE_THRESHOLD", 0.8)
TOOL_CACHE_MAX_ENTRIES = _env_int("REVLOOP_TOOL_CACHE_SIZE", 100)
TOOL_CACHE_TTL_SECONDS = _env_float("REVLOOP_TOOL_CACHE_TTL", 300.0)
LEARNING_MAX_HISTORY = _env_int("REVLOOP_LEARNING_HISTORY", 500)

# Tool execution
COMMAND_TIMEOUT_SECONDS = _env_int("REVLOOP_COMMAND_TIMEOUT", 120)
LIST_LIMIT = 100
MAX_FILE_BYTES = 2 * 1024 * 1024
EXCLUDE_DIRS = {".git", "node_modules", "dist", "build", ".next", "__pycache__", ".venv", ".revloop"}

# Inference backends
LLM_PROVIDER = os.getenv("REVLOOP_LLM_PROVIDER", "ollama").lower()
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen2.5-coder:7b")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")


def ensure_dirs() -> None:
    """Create the runtime state directories."""
    for path in (REVLOOP_DIR, LOGS_DIR, MEMORY_DIR):
        path.mkdir(parents=True, exist_ok=True)
