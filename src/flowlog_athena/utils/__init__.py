"""Utility modules for the flow log Athena tooling."""

from .logger import get_logger
from .aws_helpers import (
    get_boto3_client,
    iter_s3_keys,
    check_s3_bucket_exists,
    ensure_prefix,
    get_caller_account,
)

__all__ = [
    "get_logger",
    "get_boto3_client",
    "iter_s3_keys",
    "check_s3_bucket_exists",
    "ensure_prefix",
    "get_caller_account",
]
