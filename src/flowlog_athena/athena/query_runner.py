"""
Run Athena queries and wait for them to finish.

Athena executes every statement, DDL included, asynchronously. Instead of a
fixed sleep after submitting, ``AthenaQueryRunner.wait_for_query`` polls the
execution state on a bounded schedule and stops at the first terminal state.
"""

import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field

from ..exceptions import QueryFailedError, QueryTimeoutError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class QueryState(str, Enum):
    """Athena query execution states."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({QueryState.SUCCEEDED, QueryState.FAILED, QueryState.CANCELLED})


class PollPolicy(BaseModel):
    """How often, and how many times, to check on a running query."""

    interval: float = Field(default=1.0, gt=0)
    max_attempts: int = Field(default=60, gt=0)

    @property
    def timeout(self) -> float:
        return self.interval * self.max_attempts


class QueryResult(BaseModel):
    """Terminal state of one query execution."""

    query_id: str
    state: QueryState
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == QueryState.SUCCEEDED


class AthenaQueryRunner:
    """Submits SQL to Athena and waits for completion."""

    def __init__(
        self,
        athena_client: Any,
        output_location: str,
        workgroup: Optional[str] = None,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the query runner.

        Args:
            athena_client: Boto3 Athena client.
            output_location: S3 URI for query results.
            workgroup: Athena workgroup, None for the account default.
            poll_policy: Poll interval and attempt budget.
            sleep: Sleep function, replaceable in tests.
        """
        self.athena_client = athena_client
        self.output_location = output_location
        self.workgroup = workgroup
        self.poll_policy = poll_policy or PollPolicy()
        self._sleep = sleep

    def start_query(self, sql: str, database: Optional[str] = None) -> str:
        """
        Submit a query without waiting for it.

        Returns:
            str: Query execution id.
        """
        params: Dict[str, Any] = {
            'QueryString': sql,
            'ResultConfiguration': {'OutputLocation': self.output_location},
        }
        if database:
            params['QueryExecutionContext'] = {'Database': database}
        if self.workgroup:
            params['WorkGroup'] = self.workgroup

        logger.debug(f"Executing query: {sql[:100]}...")
        response = self.athena_client.start_query_execution(**params)
        return response['QueryExecutionId']

    def get_query_status(self, query_id: str) -> QueryResult:
        response = self.athena_client.get_query_execution(QueryExecutionId=query_id)
        status = response['QueryExecution']['Status']
        return QueryResult(
            query_id=query_id,
            state=QueryState(status['State']),
            reason=status.get('StateChangeReason'),
        )

    def wait_for_query(self, query_id: str) -> QueryResult:
        """
        Poll until the query reaches SUCCEEDED, FAILED or CANCELLED.

        Raises:
            QueryTimeoutError: No terminal state within the poll budget. The
                query is cancelled first.
        """
        last_state = None
        for attempt in range(1, self.poll_policy.max_attempts + 1):
            result = self.get_query_status(query_id)

            if result.state != last_state:
                logger.debug(f"Query {query_id} state: {result.state.value}")
                last_state = result.state

            if result.state.is_terminal:
                return result

            if attempt < self.poll_policy.max_attempts:
                self._sleep(self.poll_policy.interval)

        logger.warning(f"Query {query_id} did not finish in {self.poll_policy.timeout:g}s")
        self.stop_query(query_id)
        raise QueryTimeoutError(
            query_id,
            self.poll_policy.max_attempts,
            last_state.value if last_state else None,
        )

    def stop_query(self, query_id: str) -> bool:
        """
        Cancel a running query.

        Returns:
            bool: True if Athena accepted the cancellation.
        """
        logger.info(f"Cancelling query {query_id}")
        try:
            self.athena_client.stop_query_execution(QueryExecutionId=query_id)
            return True
        except ClientError as e:
            logger.warning(f"Could not cancel query {query_id}: {e}")
            return False

    def run_query(
        self,
        sql: str,
        database: Optional[str] = None,
        raise_on_failure: bool = True,
    ) -> QueryResult:
        """
        Submit a query and wait for its terminal state.

        Raises:
            QueryFailedError: The query FAILED or was CANCELLED and
                ``raise_on_failure`` is set.
            QueryTimeoutError: The query did not finish in time.
        """
        query_id = self.start_query(sql, database=database)
        result = self.wait_for_query(query_id)

        if not result.succeeded:
            logger.warning(f"Query {query_id} {result.state.value}: {result.reason or 'Unknown'}")
            if raise_on_failure:
                raise QueryFailedError(query_id, result.state.value, result.reason)

        return result

    def get_rows(self, query_id: str) -> List[List[Optional[str]]]:
        """Fetch all result rows of a finished query, header row included."""
        paginator = self.athena_client.get_paginator('get_query_results')
        rows = []
        for page in paginator.paginate(QueryExecutionId=query_id):
            for row in page['ResultSet']['Rows']:
                rows.append([cell.get('VarCharValue') for cell in row['Data']])
        return rows


def configure_workgroup(athena_client: Any, output_location: str, workgroup: str = "primary") -> bool:
    """
    Point a workgroup's query results at ``output_location``.

    Returns:
        bool: True if the workgroup was updated, False if it does not exist
        or could not be updated.
    """
    try:
        names = []
        paginator = athena_client.get_paginator('list_work_groups')
        for page in paginator.paginate():
            names.extend(wg['Name'] for wg in page.get('WorkGroups', []))
    except ClientError as e:
        logger.warning(f"Could not list workgroups: {e}")
        return False

    if workgroup not in names:
        logger.warning(f"Workgroup {workgroup} not found, will use output location in queries")
        return False

    try:
        athena_client.update_work_group(
            WorkGroup=workgroup,
            ConfigurationUpdates={
                'ResultConfigurationUpdates': {'OutputLocation': output_location}
            },
        )
        logger.info(f"Workgroup {workgroup} results location set to {output_location}")
        return True
    except ClientError as e:
        logger.warning(f"Could not update workgroup (may not have permissions): {e}")
        return False
