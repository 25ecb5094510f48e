"""
Correlation ID helpers for log tracing.
"""
from __future__ import annotations

from contextvars import ContextVar, Token

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def correlation_tag() -> str:
    corr = get_correlation_id()
    return f"[corr={corr}]" if corr else "[corr=none]"


def bind_correlation_id(value: str) -> Token:
    """Set the correlation id; pass the returned token to reset_correlation_id."""
    return _correlation_id.set(value)


def reset_correlation_id(token: Token) -> None:
    _correlation_id.reset(token)
