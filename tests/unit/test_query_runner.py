"""Unit tests for Athena query execution and polling."""

import pytest
from unittest.mock import Mock
from pydantic import ValidationError

from flowlog_athena.athena.query_runner import (
    AthenaQueryRunner,
    PollPolicy,
    QueryState,
    configure_workgroup,
)
from flowlog_athena.exceptions import QueryFailedError, QueryTimeoutError

OUTPUT = "s3://results/athena-results/"


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def runner(athena_client, sleep):
    return AthenaQueryRunner(
        athena_client, OUTPUT, poll_policy=PollPolicy(interval=2, max_attempts=4), sleep=sleep
    )


class TestQueryState:
    """Test query state helpers."""

    @pytest.mark.parametrize("state", ["SUCCEEDED", "FAILED", "CANCELLED"])
    def test_terminal(self, state):
        assert QueryState(state).is_terminal

    @pytest.mark.parametrize("state", ["QUEUED", "RUNNING"])
    def test_not_terminal(self, state):
        assert not QueryState(state).is_terminal


class TestPollPolicy:
    """Test poll policy validation."""

    def test_defaults(self):
        policy = PollPolicy()
        assert policy.interval == 1.0
        assert policy.max_attempts == 60
        assert policy.timeout == 60.0

    @pytest.mark.parametrize("kwargs", [{'interval': 0}, {'max_attempts': 0}, {'interval': -1}])
    def test_rejects_non_positive(self, kwargs):
        with pytest.raises(ValidationError):
            PollPolicy(**kwargs)


class TestStartQuery:
    """Test query submission."""

    def test_with_database_and_workgroup(self, athena_client):
        runner = AthenaQueryRunner(athena_client, OUTPUT, workgroup="primary")
        query_id = runner.start_query("SELECT 1", database="vpc_flow_logs")

        assert query_id == "query-1"
        athena_client.start_query_execution.assert_called_once_with(
            QueryString="SELECT 1",
            ResultConfiguration={'OutputLocation': OUTPUT},
            QueryExecutionContext={'Database': 'vpc_flow_logs'},
            WorkGroup="primary",
        )

    def test_without_database(self, runner, athena_client):
        runner.start_query("CREATE DATABASE IF NOT EXISTS x")

        kwargs = athena_client.start_query_execution.call_args.kwargs
        assert 'QueryExecutionContext' not in kwargs
        assert 'WorkGroup' not in kwargs


class TestWaitForQuery:
    """Test bounded polling."""

    def test_returns_on_first_terminal_state(self, runner, athena_client, execution, sleep):
        athena_client.get_query_execution.side_effect = [
            execution('QUEUED'),
            execution('RUNNING'),
            execution('SUCCEEDED'),
        ]

        result = runner.wait_for_query("query-1")

        assert result.state == QueryState.SUCCEEDED
        assert result.succeeded
        assert athena_client.get_query_execution.call_count == 3
        assert sleep.call_count == 2
        sleep.assert_called_with(2)

    def test_no_sleep_when_already_done(self, runner, sleep):
        runner.wait_for_query("query-1")
        sleep.assert_not_called()

    def test_failed_state_carries_reason(self, runner, athena_client, execution):
        athena_client.get_query_execution.return_value = execution('FAILED', 'Table not found')

        result = runner.wait_for_query("query-1")

        assert result.state == QueryState.FAILED
        assert result.reason == 'Table not found'
        assert not result.succeeded

    def test_timeout_after_max_attempts(self, runner, athena_client, execution, sleep):
        athena_client.get_query_execution.return_value = execution('RUNNING')

        with pytest.raises(QueryTimeoutError) as exc_info:
            runner.wait_for_query("query-1")

        assert athena_client.get_query_execution.call_count == 4
        assert sleep.call_count == 3
        assert exc_info.value.last_state == "RUNNING"
        assert exc_info.value.attempts == 4
        athena_client.stop_query_execution.assert_called_once_with(QueryExecutionId="query-1")

    def test_timeout_raised_when_cancel_fails(self, runner, athena_client, execution, client_error):
        athena_client.get_query_execution.return_value = execution('QUEUED')
        athena_client.stop_query_execution.side_effect = client_error(
            'InvalidRequestException', 'StopQueryExecution'
        )

        with pytest.raises(QueryTimeoutError):
            runner.wait_for_query("query-1")

        athena_client.stop_query_execution.assert_called_once()

    def test_terminal_query_not_cancelled(self, runner, athena_client):
        runner.wait_for_query("query-1")
        athena_client.stop_query_execution.assert_not_called()


class TestRunQuery:
    """Test submit-and-wait."""

    def test_success(self, runner):
        result = runner.run_query("SELECT 1", database="vpc_flow_logs")
        assert result.query_id == "query-1"
        assert result.succeeded

    def test_failure_raises(self, runner, athena_client, execution):
        athena_client.get_query_execution.return_value = execution('CANCELLED', 'User cancelled')

        with pytest.raises(QueryFailedError) as exc_info:
            runner.run_query("SELECT 1")

        assert exc_info.value.state == "CANCELLED"
        assert "User cancelled" in str(exc_info.value)

    def test_failure_returned_when_not_raising(self, runner, athena_client, execution):
        athena_client.get_query_execution.return_value = execution('FAILED')

        result = runner.run_query("SELECT 1", raise_on_failure=False)
        assert result.state == QueryState.FAILED


class TestGetRows:
    """Test result fetching."""

    def test_rows_include_header(self, runner, athena_client):
        rows = runner.get_rows("query-1")

        assert rows == [["eventname", "event_count"], ["ListBuckets", "42"]]
        athena_client.get_paginator.assert_called_with('get_query_results')


class TestConfigureWorkgroup:
    """Test workgroup result location updates."""

    def test_updates_existing_workgroup(self, athena_client):
        assert configure_workgroup(athena_client, OUTPUT) is True
        athena_client.update_work_group.assert_called_once_with(
            WorkGroup="primary",
            ConfigurationUpdates={'ResultConfigurationUpdates': {'OutputLocation': OUTPUT}},
        )

    def test_missing_workgroup(self, athena_client):
        assert configure_workgroup(athena_client, OUTPUT, workgroup="analytics") is False
        athena_client.update_work_group.assert_not_called()

    def test_update_denied(self, athena_client, client_error):
        athena_client.update_work_group.side_effect = client_error('AccessDeniedException', 'UpdateWorkGroup')
        assert configure_workgroup(athena_client, OUTPUT) is False
