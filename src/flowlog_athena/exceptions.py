"""Exceptions raised by the flow log Athena tooling."""

from typing import Optional


class FlowLogAthenaError(Exception):
    """Base class for all package errors."""


class InvalidInputError(FlowLogAthenaError, ValueError):
    """Raised for malformed caller input, before any AWS call is made."""


class QueryFailedError(FlowLogAthenaError):
    """An Athena query reached FAILED or CANCELLED."""

    def __init__(self, query_id: str, state: str, reason: Optional[str] = None):
        self.query_id = query_id
        self.state = state
        self.reason = reason
        message = f"Query {query_id} {state}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class QueryTimeoutError(FlowLogAthenaError):
    """An Athena query did not reach a terminal state within the poll budget."""

    def __init__(self, query_id: str, attempts: int, last_state: Optional[str] = None):
        self.query_id = query_id
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(
            f"Query {query_id} still {last_state or 'UNKNOWN'} after {attempts} polls"
        )
