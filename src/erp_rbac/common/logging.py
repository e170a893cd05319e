"""Console logging for RBAC processes.

Records render as a single line::

    2025-01-07T10:00:00.123Z INFO  erp_rbac.features.rbac.assignments [cid=- actor=u-9]
    rbac.assign.success user_id=u-1 role_name=unit_admin

Callers attach structured fields with ``extra=log_context(...)``; whatever is
bound with :func:`bind_request_context` (correlation id and acting user) is
added to every record emitted in the same context.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from erp_rbac.settings import Settings

_CORRELATION_ID: ContextVar[str | None] = ContextVar("erp_rbac_correlation_id", default=None)
_ACTOR_ID: ContextVar[str | None] = ContextVar("erp_rbac_actor_id", default=None)

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "correlation_id", "actor"}

_CONFIGURED_FLAG = "_erp_rbac_configured"

# Third-party loggers that should share the root handler.
_PROPAGATED_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "aiosqlite")


class ConsoleLogFormatter(logging.Formatter):
    """Single-line formatter with UTC timestamps and ``key=value`` extras."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s actor=%(actor)s] %(message)s",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return f"{stamp:%Y-%m-%dT%H:%M:%S}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or _CORRELATION_ID.get() or "-"
        )
        record.actor = getattr(record, "actor", None) or _ACTOR_ID.get() or "-"

        line = super().format(record)
        extras = " ".join(
            f"{key}={_render(value)}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        return f"{line} {extras}" if extras else line


def setup_logging(settings: Settings) -> None:
    """Install the console handler on the root logger (once per process).

    Later calls only adjust the level from ``settings.logging_level``
    (``ERP_RBAC_LOGGING_LEVEL``).
    """
    root = logging.getLogger()
    root.setLevel(logging.getLevelNamesMapping().get(settings.logging_level, logging.INFO))
    if getattr(root, _CONFIGURED_FLAG, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(ConsoleLogFormatter())
    root.handlers = [handler]

    for name in _PROPAGATED_LOGGERS:
        third_party = logging.getLogger(name)
        third_party.handlers.clear()
        third_party.propagate = True

    setattr(root, _CONFIGURED_FLAG, True)


def bind_request_context(correlation_id: str | None, actor_id: str | None = None) -> None:
    """Tag subsequent records in this context with a correlation id and acting user."""
    _CORRELATION_ID.set(correlation_id)
    _ACTOR_ID.set(actor_id)


def clear_request_context() -> None:
    _CORRELATION_ID.set(None)
    _ACTOR_ID.set(None)


def log_context(
    *,
    user_id: str | None = None,
    role_name: str | None = None,
    permission: str | None = None,
    assignment_id: str | None = None,
    actor_id: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build an ``extra`` payload, leaving out the RBAC identifiers that are unset."""
    identifiers = {
        "user_id": user_id,
        "role_name": role_name,
        "permission": permission,
        "assignment_id": assignment_id,
        "actor_id": actor_id,
    }
    return {**{key: value for key, value in identifiers.items() if value is not None}, **extra}


def _render(value: Any) -> str:
    return "null" if value is None else str(value)


__all__ = [
    "ConsoleLogFormatter",
    "bind_request_context",
    "clear_request_context",
    "log_context",
    "setup_logging",
]
