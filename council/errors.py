"""Error types and helpers for the council interview engine."""

from __future__ import annotations

import re
from collections.abc import Iterator

import click


class CouncilError(RuntimeError):
    """Base class for errors raised by the council core."""


class GenerationError(CouncilError):
    """Raised when the upstream text-generation provider fails.

    Always retryable from the scheduler's point of view: nothing has been
    persisted for the turn that triggered the call.
    """

    def __init__(
        self,
        message: str,
        *,
        judge: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.judge = judge
        self.provider = provider
        self.status_code = status_code


class SchemaNotInitializedError(click.ClickException):
    """Raised when the council tables have not been created yet."""


_MISSING_TABLE_PATTERNS = (
    re.compile(r'relation "(?P<table>[^"]+)" does not exist', re.IGNORECASE),
    re.compile(r"no such table:\s*(?P<table>\w+)", re.IGNORECASE),
)


def iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk an exception and everything it was raised from, once each."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def missing_table_name(exc: BaseException) -> str | None:
    for cause in iter_causes(exc):
        for pattern in _MISSING_TABLE_PATTERNS:
            match = pattern.search(str(cause))
            if match:
                return match.group("table")
    return None


def is_schema_missing_error(exc: BaseException) -> bool:
    if missing_table_name(exc) is not None:
        return True
    # asyncpg wraps the relation name differently depending on the statement
    return any("undefinedtableerror" in str(cause).lower() for cause in iter_causes(exc))


def schema_not_initialized_message(exc: BaseException) -> str:
    table = missing_table_name(exc)
    headline = "Council database schema is not initialized"
    if table:
        headline += f" (missing table `{table}`)"
    return "\n".join(
        [
            headline + ".",
            "Run: `alembic upgrade head`",
            "Or for a scratch database: `council init-db`",
        ]
    )
