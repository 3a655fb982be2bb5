"""Athena query execution and SQL templates."""

from .query_runner import (
    AthenaQueryRunner,
    PollPolicy,
    QueryResult,
    QueryState,
    configure_workgroup,
)

__all__ = [
    "AthenaQueryRunner",
    "PollPolicy",
    "QueryResult",
    "QueryState",
    "configure_workgroup",
]
