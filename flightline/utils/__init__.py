"""Shared helpers."""

from .async_context import AsyncContextManager

__all__ = ["AsyncContextManager"]
