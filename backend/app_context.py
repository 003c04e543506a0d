"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_conn: Optional[Callable[[], Any]] = None
_get_current_principal: Optional[Callable[..., Any]] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    get_current_principal: Callable[..., Any],
) -> None:
    """Register application-wide dependencies required by the stores and routers."""

    global _get_conn
    global _get_current_principal

    _get_conn = get_conn
    _get_current_principal = get_current_principal


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_current_principal(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_get_current_principal, "get_current_principal")
    return dependency(*args, **kwargs)


def reset() -> None:
    """Forget registered dependencies."""

    global _get_conn
    global _get_current_principal

    _get_conn = None
    _get_current_principal = None


__all__ = ["configure", "get_conn", "get_current_principal", "reset"]
