"""
Command line entry point.

    flowlog-athena setup-athena --bucket my-vpc-logs --account-id 123456789012
    flowlog-athena setup-athena --bucket my-vpc-logs --account-id 123456789012 --auto-partitions 7
    flowlog-athena reconcile --bucket my-vpc-logs --account-id 123456789012
    flowlog-athena setup-cloudtrail --bucket my-bucket --prefix cloudtrail-demo/flaws.cloud/ \\
        --trail-account-id 811596193553 --trail-region us-west-2
    flowlog-athena setup-cloudtrail --bucket my-bucket --skip-download --cleanup

Every option falls back to the matching environment variable (BUCKET_NAME,
ACCOUNT_ID, DATABASE_NAME, TABLE_NAME, REGION, RESULTS_BUCKET, VPC_ID,
DOWNLOAD_DIR).
"""

import argparse
import sys
from typing import List, Optional

from .bootstrap import (
    CATALOG_BACKENDS,
    CloudTrailAthenaBootstrapper,
    FlowLogsAthenaBootstrapper,
    PartitionPlan,
)
from .config import config
from .dataset import CloudTrailDataset
from .exceptions import InvalidInputError
from .utils.logger import get_logger

logger = get_logger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--bucket',
        type=str,
        default=config.flow_logs.bucket or None,
        help='S3 bucket name containing the logs'
    )
    parser.add_argument(
        '--region',
        type=str,
        default=config.aws.region,
        help=f'AWS region (default: {config.aws.region})'
    )
    parser.add_argument(
        '--results',
        type=str,
        default=config.athena.results_bucket or None,
        help='S3 bucket for Athena query results (default: same as --bucket)'
    )
    parser.add_argument(
        '--catalog',
        choices=CATALOG_BACKENDS,
        default=config.athena.catalog,
        help='How partitions are registered (default: %(default)s)'
    )
    parser.add_argument(
        '--validate-dates',
        action='store_true',
        help='Skip discovered date folders that are not real calendar dates'
    )


def _add_flow_log_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--account-id',
        type=str,
        default=config.aws.account_id,
        help='AWS Account ID (12 digits)'
    )
    parser.add_argument(
        '--database',
        type=str,
        default=config.athena.database,
        help='Athena database name (default: %(default)s)'
    )
    parser.add_argument(
        '--table',
        type=str,
        default=config.athena.table,
        help='Athena table name (default: %(default)s)'
    )
    parser.add_argument(
        '--partition-dates',
        type=str,
        help='Comma-separated dates to create partitions for (format: YYYY-MM-DD)'
    )
    parser.add_argument(
        '--auto-partitions',
        type=int,
        metavar='DAYS',
        help='Create partitions for the last N days'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='flowlog-athena',
        description='Bootstrap Athena over VPC Flow Logs and keep its partitions registered'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    setup_parser = subparsers.add_parser(
        'setup-athena',
        help='Create the Athena database, table and partitions for VPC Flow Logs'
    )
    _add_common_arguments(setup_parser)
    _add_flow_log_arguments(setup_parser)
    setup_parser.add_argument(
        '--vpc-id',
        type=str,
        default=config.flow_logs.vpc_id,
        help='VPC ID, shown in the summary (optional)'
    )
    setup_parser.add_argument(
        '--discover',
        action='store_true',
        help='Register partitions for every date folder found in S3'
    )
    setup_parser.add_argument(
        '--projection',
        action='store_true',
        help='Enable partition projection instead of registering partitions'
    )

    reconcile_parser = subparsers.add_parser(
        'reconcile',
        help='Register partitions for dates found in S3 (and any requested dates)'
    )
    _add_common_arguments(reconcile_parser)
    _add_flow_log_arguments(reconcile_parser)

    cloudtrail_parser = subparsers.add_parser(
        'setup-cloudtrail',
        help='Upload the flaws.cloud CloudTrail dataset to S3 and create an Athena table over it'
    )
    _add_common_arguments(cloudtrail_parser)
    cloudtrail_parser.add_argument(
        '--prefix',
        type=str,
        default='cloudtrail-demo/flaws.cloud/',
        help='Key prefix above AWSLogs/ (default: %(default)s)'
    )
    cloudtrail_parser.add_argument(
        '--trail-account-id',
        type=str,
        default='811596193553',
        help='Account id in the CloudTrail key layout (default: %(default)s)'
    )
    cloudtrail_parser.add_argument(
        '--trail-region',
        type=str,
        default='us-west-2',
        help='Region in the CloudTrail key layout (default: %(default)s)'
    )
    cloudtrail_parser.add_argument(
        '--database',
        type=str,
        default='cloudtrail_demo',
        help='Athena database name (default: %(default)s)'
    )
    cloudtrail_parser.add_argument(
        '--table',
        type=str,
        default='cloudtrail_logs',
        help='Athena table name (default: %(default)s)'
    )
    cloudtrail_parser.add_argument(
        '--download-dir',
        type=str,
        default=config.cloudtrail.download_dir,
        help='Local directory for the dataset download (default: %(default)s)'
    )
    cloudtrail_parser.add_argument(
        '--skip-download',
        action='store_true',
        help='Use logs already extracted into --download-dir'
    )
    cloudtrail_parser.add_argument(
        '--skip-upload',
        action='store_true',
        help='Skip the upload to S3 (dataset already uploaded)'
    )
    cloudtrail_parser.add_argument(
        '--cleanup',
        action='store_true',
        help='Delete local files after setup'
    )

    return parser


def _flow_logs_bootstrapper(args: argparse.Namespace, projection: bool = False) -> FlowLogsAthenaBootstrapper:
    return FlowLogsAthenaBootstrapper(
        bucket=args.bucket,
        account_id=args.account_id,
        database=args.database,
        table=args.table,
        region=args.region,
        results_bucket=args.results,
        vpc_id=getattr(args, 'vpc_id', None),
        projection=projection,
        catalog=args.catalog,
    )


def run_setup_athena(args: argparse.Namespace) -> int:
    if args.auto_partitions is not None and args.auto_partitions < 0:
        raise InvalidInputError("--auto-partitions must be >= 0")

    bootstrapper = _flow_logs_bootstrapper(args, projection=args.projection)
    plan = PartitionPlan(
        dates=args.partition_dates,
        auto_days=args.auto_partitions,
        discover=args.discover,
        validate_calendar=args.validate_dates,
    )
    result = bootstrapper.setup(plan)
    return 0 if result.success else 1


def run_reconcile(args: argparse.Namespace) -> int:
    if args.auto_partitions is not None and args.auto_partitions < 0:
        raise InvalidInputError("--auto-partitions must be >= 0")

    bootstrapper = _flow_logs_bootstrapper(args)
    plan = PartitionPlan(
        dates=args.partition_dates,
        auto_days=args.auto_partitions,
        discover=True,
        validate_calendar=args.validate_dates,
    )
    keys = bootstrapper.plan_partitions(plan)
    if not keys:
        logger.info("No partitions found")
        return 0

    report = bootstrapper.add_partitions(keys)
    for key in report.failed_keys:
        logger.error(f"Failed partition: {key}")
    return 0 if report.succeeded else 1


def run_setup_cloudtrail(args: argparse.Namespace) -> int:
    bootstrapper = CloudTrailAthenaBootstrapper(
        bucket=args.bucket,
        dataset_prefix=args.prefix,
        trail_account_id=args.trail_account_id,
        trail_region=args.trail_region,
        database=args.database,
        table=args.table,
        region=args.region,
        results_bucket=args.results,
        catalog=args.catalog,
    )

    dataset = CloudTrailDataset(args.download_dir)
    if not args.skip_upload:
        if not bootstrapper.load_dataset(dataset, skip_download=args.skip_download):
            return 1

    result = bootstrapper.setup(validate_calendar=args.validate_dates)

    if args.cleanup:
        dataset.cleanup()
    return 0 if result.success else 1


COMMANDS = {
    'setup-athena': run_setup_athena,
    'reconcile': run_reconcile,
    'setup-cloudtrail': run_setup_cloudtrail,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        exit_code = COMMANDS[args.command](args)
    except InvalidInputError as e:
        logger.error(str(e))
        parser.print_usage(sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == '__main__':
    main()
