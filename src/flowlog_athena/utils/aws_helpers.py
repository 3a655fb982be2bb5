"""AWS helper functions using Boto3."""

from typing import Any, Iterator, Optional
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import config
from .logger import get_logger

logger = get_logger(__name__)


def get_boto3_client(service_name: str, region: Optional[str] = None) -> Any:
    """
    Get a Boto3 client for the specified AWS service.

    Args:
        service_name: AWS service name (e.g., 's3', 'glue', 'athena')
        region: AWS region. If None, uses config default.

    Returns:
        Boto3 client instance.
    """
    region = region or config.aws.region
    logger.debug(f"Creating Boto3 client for {service_name} in {region}")
    return boto3.client(service_name, region_name=region)


def iter_s3_keys(bucket: str, prefix: str = "", s3_client: Any = None) -> Iterator[str]:
    """
    Lazily yield object keys under a prefix.

    Pages are fetched on demand. Listing errors are not caught here; the
    caller decides whether an unreachable bucket is fatal.

    Args:
        bucket: S3 bucket name
        prefix: Object key prefix filter
        s3_client: Optional pre-built S3 client

    Yields:
        Object keys.
    """
    s3_client = s3_client or get_boto3_client('s3')
    logger.info(f"Listing objects in s3://{bucket}/{prefix}")

    paginator = s3_client.get_paginator('list_objects_v2')
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for obj in page.get('Contents', []):
            yield obj['Key']


def check_s3_bucket_exists(bucket: str, s3_client: Any = None) -> bool:
    """
    Check if an S3 bucket exists and is accessible.

    Args:
        bucket: S3 bucket name
        s3_client: Optional pre-built S3 client

    Returns:
        True if bucket exists and is accessible, False otherwise.
    """
    try:
        s3_client = s3_client or get_boto3_client('s3')
        s3_client.head_bucket(Bucket=bucket)
        logger.info(f"Bucket {bucket} exists and is accessible")
        return True
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code == '404':
            logger.warning(f"Bucket {bucket} does not exist")
        else:
            logger.error(f"Error checking bucket {bucket}: {e}")
        return False


def ensure_prefix(bucket: str, prefix: str, s3_client: Any = None) -> bool:
    """
    Create an empty "folder" marker object for a prefix.

    Returns:
        True if the marker was written, False otherwise.
    """
    try:
        s3_client = s3_client or get_boto3_client('s3')
        s3_client.put_object(Bucket=bucket, Key=prefix)
        return True
    except ClientError as e:
        logger.warning(f"Could not create s3://{bucket}/{prefix}: {e}")
        return False


def get_caller_account(sts_client: Any = None) -> Optional[str]:
    """
    Return the account id of the configured credentials.

    Returns:
        Account id, or None when the credentials are missing or invalid.
    """
    try:
        sts_client = sts_client or get_boto3_client('sts')
        return sts_client.get_caller_identity()['Account']
    except (ClientError, BotoCoreError) as e:
        logger.error(f"AWS credentials not configured or invalid: {e}")
        return None
