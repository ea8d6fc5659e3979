"""Error types and helpers for the agent congress."""

from __future__ import annotations

import re
from collections.abc import Iterator

import click


class CongressError(click.ClickException):
    """Base class for errors surfaced to callers of the congress core."""


class NotFoundError(CongressError):
    """A referenced agent, debate, committee, coalition or vote subject is absent."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class ValidationFailedError(CongressError):
    """Rejected before any state was mutated (bad vote type, too few participants, ...)."""


class GenerationError(CongressError):
    """The external text generator failed, timed out or returned nothing usable."""


class PersistenceError(CongressError):
    """A snapshot could not be written or read."""


class SchemaNotInitializedError(PersistenceError):
    """Raised when the snapshot table has not been created."""


_MISSING_TABLE_PATTERNS = (
    re.compile(r'relation "(?P<table>[^"]+)" does not exist', re.IGNORECASE),
    re.compile(r"no such table:\s*(?P<table>\w+)", re.IGNORECASE),
)


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def missing_table_name(exc: BaseException) -> str | None:
    """Name of the missing table if any exception in the chain reports one."""
    for cause in _causes(exc):
        for pattern in _MISSING_TABLE_PATTERNS:
            found = pattern.search(str(cause))
            if found:
                return found.group("table")
    return None


def is_schema_missing_error(exc: BaseException) -> bool:
    if missing_table_name(exc) is not None:
        return True
    # asyncpg sometimes only reports the exception class name
    return any("undefinedtableerror" in str(cause).lower() for cause in _causes(exc))


def schema_not_initialized_message(exc: BaseException) -> str:
    table = missing_table_name(exc)
    suffix = f" (no `{table}` table)" if table else ""
    return f"Snapshot schema is not initialized{suffix}.\nRun: `congress init-db`"
