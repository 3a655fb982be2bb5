"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import Mock
from botocore.exceptions import ClientError


ROOT_PREFIX = "AWSLogs/1/vpcflowlogs/us-east-1/"


def make_client_error(code: str, operation: str = "CreatePartition", message: str = "") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError(
        {'Error': {'Code': code, 'Message': message or code}},
        operation,
    )


def query_execution(state: str, reason: str = None) -> dict:
    """Shape of an Athena get_query_execution response."""
    status = {'State': state}
    if reason:
        status['StateChangeReason'] = reason
    return {'QueryExecution': {'Status': status}}


@pytest.fixture
def sample_listing():
    """S3 listing with two days of flow logs and one unrelated object."""
    return [
        f"{ROOT_PREFIX}2024/01/15/file1.log.gz",
        f"{ROOT_PREFIX}2024/01/15/file2.log.gz",
        f"{ROOT_PREFIX}2024/01/16/file3.log.gz",
        "athena-results/readme.txt",
    ]


@pytest.fixture
def glue_client():
    """Mock Glue client with a partitioned flow log table."""
    client = Mock()
    client.get_table.return_value = {
        'Table': {
            'Name': 'flow_logs',
            'StorageDescriptor': {
                'Location': f"s3://my-vpc-logs/{ROOT_PREFIX}",
                'Columns': [{'Name': 'version', 'Type': 'int'}],
                'SerdeInfo': {'Parameters': {'field.delim': ' '}},
            },
        }
    }
    return client


@pytest.fixture
def athena_client():
    """Mock Athena client whose queries all succeed immediately."""
    client = Mock()
    client.start_query_execution.return_value = {'QueryExecutionId': 'query-1'}
    client.get_query_execution.return_value = query_execution('SUCCEEDED')

    workgroups = Mock()
    workgroups.paginate.return_value = [{'WorkGroups': [{'Name': 'primary'}]}]
    results = Mock()
    results.paginate.return_value = [{
        'ResultSet': {'Rows': [
            {'Data': [{'VarCharValue': 'eventname'}, {'VarCharValue': 'event_count'}]},
            {'Data': [{'VarCharValue': 'ListBuckets'}, {'VarCharValue': '42'}]},
        ]}
    }]
    client.get_paginator.side_effect = lambda name: {
        'list_work_groups': workgroups,
        'get_query_results': results,
    }[name]
    return client


@pytest.fixture
def s3_client(sample_listing):
    """Mock S3 client listing ``sample_listing`` in two pages."""
    client = Mock()
    paginator = Mock()
    paginator.paginate.return_value = [
        {'Contents': [{'Key': key} for key in sample_listing[:2]]},
        {'Contents': [{'Key': key} for key in sample_listing[2:]]},
    ]
    client.get_paginator.return_value = paginator
    return client


@pytest.fixture
def sts_client():
    client = Mock()
    client.get_caller_identity.return_value = {'Account': '123456789012'}
    return client


@pytest.fixture
def mock_aws_credentials(monkeypatch):
    """Mock AWS credentials for testing."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def client_error():
    """Factory for botocore ClientErrors."""
    return make_client_error


@pytest.fixture
def execution():
    """Factory for get_query_execution responses."""
    return query_execution


@pytest.fixture
def root_prefix():
    return ROOT_PREFIX
