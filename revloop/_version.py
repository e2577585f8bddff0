"""Centralized version constant for revloop."""

REVLOOP_VERSION = "0.4.0"

__all__ = ["REVLOOP_VERSION"]
