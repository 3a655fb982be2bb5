"""
Bootstrap Athena for analyzing VPC Flow Logs and CloudTrail logs in S3.

The flow log bootstrapper:
1. Validates inputs and AWS credentials
2. Points the Athena workgroup at the query results location
3. Creates the database and the partitioned table
4. Registers date partitions (explicit dates, last N days, discovered in S3)
5. Runs a verification query and prints next steps

The CloudTrail bootstrapper can first download the public flaws.cloud dataset
and upload it to S3, then does the same for the CloudTrail table.
"""

import re
from datetime import date
from typing import Iterable, List, Optional, Sequence

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field

from .athena.query_runner import (
    AthenaQueryRunner,
    PollPolicy,
    QueryResult,
    QueryState,
    configure_workgroup,
)
from .athena.sql import (
    CLOUDTRAIL_PARTITION_COLUMNS,
    count_records_sql,
    create_cloudtrail_table_sql,
    create_database_sql,
    create_flow_logs_table_sql,
    top_events_sql,
)
from .config import config
from .dataset import CloudTrailDataset
from .exceptions import FlowLogAthenaError, InvalidInputError
from .partitions import (
    PartitionKey,
    discover_partitions,
    generate_speculative_partitions,
    parse_partition_dates,
)
from .reconciler import (
    AthenaPartitionCatalog,
    GluePartitionCatalog,
    PartitionCatalog,
    PartitionReconciler,
    ReconcileReport,
)
from .utils.aws_helpers import (
    check_s3_bucket_exists,
    ensure_prefix,
    get_boto3_client,
    get_caller_account,
    iter_s3_keys,
)
from .utils.logger import get_logger

logger = get_logger(__name__)

ACCOUNT_ID_RE = re.compile(r"^[0-9]{12}$")
CATALOG_BACKENDS = ("glue", "athena")


class BootstrapResult(BaseModel):
    """What a bootstrap run did."""

    success: bool
    partitions: Optional[ReconcileReport] = None
    test_query_state: Optional[QueryState] = None


class PartitionPlan(BaseModel):
    """Which partitions a run should register."""

    dates: Optional[str] = None
    auto_days: Optional[int] = Field(default=None, ge=0)
    discover: bool = False
    validate_calendar: bool = False
    reference_date: Optional[date] = None


class _AthenaBootstrapper:
    """Steps shared by the flow log and CloudTrail bootstrappers."""

    def __init__(
        self,
        bucket: str,
        database: str,
        table: str,
        region: Optional[str] = None,
        results_bucket: Optional[str] = None,
        catalog: str = "glue",
        poll_policy: Optional[PollPolicy] = None,
        clients: Optional[dict] = None,
    ):
        if not bucket:
            raise InvalidInputError("BUCKET_NAME is required")
        if catalog not in CATALOG_BACKENDS:
            raise InvalidInputError(f"catalog must be one of {CATALOG_BACKENDS}, got {catalog!r}")

        self.bucket = bucket
        self.database = database
        self.table = table
        self.region = region or config.aws.region
        self.results_bucket = results_bucket or bucket
        self.catalog_backend = catalog
        self.output_location = f"s3://{self.results_bucket}/{config.athena.results_prefix}"

        clients = clients or {}
        self.s3_client = clients.get('s3') or get_boto3_client('s3', region=self.region)
        self.athena_client = clients.get('athena') or get_boto3_client('athena', region=self.region)
        self.glue_client = clients.get('glue') or get_boto3_client('glue', region=self.region)
        self.sts_client = clients.get('sts') or get_boto3_client('sts', region=self.region)

        self.runner = AthenaQueryRunner(
            self.athena_client,
            self.output_location,
            workgroup=config.athena.workgroup,
            poll_policy=poll_policy or PollPolicy(
                interval=config.athena.poll_interval,
                max_attempts=config.athena.max_poll_attempts,
            ),
        )

    def check_access(self) -> bool:
        """Verify credentials and results bucket access."""
        if get_caller_account(self.sts_client) is None:
            return False

        logger.info("Verifying S3 bucket access...")
        if not check_s3_bucket_exists(self.results_bucket, self.s3_client):
            logger.error(f"Cannot access S3 bucket: {self.results_bucket}")
            logger.error("Please ensure the bucket exists and you have permissions to access it")
            return False
        return True

    def configure_results_location(self) -> None:
        logger.info("Configuring Athena query results location...")
        configure_workgroup(self.athena_client, self.output_location, self.runner.workgroup)
        ensure_prefix(self.results_bucket, config.athena.results_prefix, self.s3_client)
        logger.info(f"Query results will be stored at: {self.output_location}")

    def create_database(self, comment: str) -> bool:
        logger.info(f"Creating Athena database '{self.database}' (if it doesn't exist)...")
        sql = create_database_sql(self.database, f"s3://{self.bucket}/athena-database/", comment)
        result = self.runner.run_query(sql, raise_on_failure=False)
        if not result.succeeded:
            logger.error(f"Database creation failed. Status: {result.state.value}")
            return False
        logger.info("Database created successfully")
        return True

    def create_table(self, sql: str) -> bool:
        logger.info(f"Creating Athena table '{self.table}'...")
        result = self.runner.run_query(sql, database=self.database, raise_on_failure=False)
        if not result.succeeded:
            logger.error(f"Table creation failed. Status: {result.state.value}")
            if result.reason:
                logger.error(result.reason)
            return False
        logger.info(f"Table '{self.table}' created successfully")
        return True

    def build_catalog(
        self,
        static_columns: Sequence[str] = (),
        static_values: Sequence[str] = (),
    ) -> PartitionCatalog:
        if self.catalog_backend == "athena":
            return AthenaPartitionCatalog(self.runner, self.database, static_columns, static_values)
        return GluePartitionCatalog(self.glue_client, self.database, static_values)

    def run_test_query(self, sql: str) -> Optional[QueryResult]:
        logger.info("Running test query to verify setup...")
        try:
            result = self.runner.run_query(sql, database=self.database, raise_on_failure=False)
        except FlowLogAthenaError as e:
            logger.warning(f"Test query did not finish: {e}")
            return None

        if result.succeeded:
            logger.info("Test query succeeded - Athena table is ready!")
        else:
            logger.warning(
                f"Test query status: {result.state.value} (This is normal if no data exists yet)"
            )
        return result


class FlowLogsAthenaBootstrapper(_AthenaBootstrapper):
    """Creates the Athena database, table and partitions for VPC Flow Logs."""

    def __init__(
        self,
        bucket: str,
        account_id: str,
        database: Optional[str] = None,
        table: Optional[str] = None,
        region: Optional[str] = None,
        results_bucket: Optional[str] = None,
        vpc_id: Optional[str] = None,
        projection: bool = False,
        catalog: str = "glue",
        poll_policy: Optional[PollPolicy] = None,
        clients: Optional[dict] = None,
    ):
        """
        Initialize the flow log bootstrapper.

        Args:
            bucket: S3 bucket receiving VPC Flow Logs.
            account_id: 12-digit AWS account id in the log key layout.
            database: Athena database name.
            table: Athena table name.
            region: Region of the logs and of Athena.
            results_bucket: Bucket for query results, defaults to ``bucket``.
            vpc_id: Recorded for the summary; flow log keys are not per-VPC.
            projection: Use partition projection instead of registering partitions.
            catalog: Partition backend, ``glue`` or ``athena``.
            poll_policy: Query poll settings.
            clients: Pre-built boto3 clients keyed by service name.
        """
        if not account_id or not ACCOUNT_ID_RE.match(account_id):
            raise InvalidInputError("ACCOUNT_ID must be a 12-digit number")

        super().__init__(
            bucket,
            database or config.athena.database,
            table or config.athena.table,
            region=region,
            results_bucket=results_bucket,
            catalog=catalog,
            poll_policy=poll_policy,
            clients=clients,
        )
        self.account_id = account_id
        self.vpc_id = vpc_id
        self.projection = projection

    @property
    def log_prefix(self) -> str:
        return f"AWSLogs/{self.account_id}/vpcflowlogs/{self.region}/"

    @property
    def log_location(self) -> str:
        return f"s3://{self.bucket}/{self.log_prefix}"

    def plan_partitions(self, plan: PartitionPlan) -> List[PartitionKey]:
        """
        Resolve a partition plan into keys, newest first.

        S3 listing errors propagate.
        """
        keys = set()
        if plan.dates:
            keys.update(parse_partition_dates(plan.dates))
        if plan.auto_days:
            logger.info(f"Auto-creating partitions for last {plan.auto_days} days...")
            keys.update(generate_speculative_partitions(plan.reference_date, plan.auto_days))
        if plan.discover:
            logger.info("Discovering partitions from S3...")
            listing = iter_s3_keys(self.bucket, self.log_prefix, self.s3_client)
            keys.update(discover_partitions(self.log_prefix, listing, plan.validate_calendar))
        return sorted(keys, reverse=True)

    def add_partitions(self, keys: Iterable[PartitionKey]) -> ReconcileReport:
        reconciler = PartitionReconciler(self.build_catalog(), self.log_location)
        return reconciler.reconcile(self.table, keys)

    def setup(self, plan: Optional[PartitionPlan] = None) -> BootstrapResult:
        """
        Run the full bootstrap.

        Returns:
            BootstrapResult: success is False when a required step failed or
            any partition could not be registered.
        """
        plan = plan or PartitionPlan()

        logger.info("=" * 80)
        logger.info("Starting Athena setup for VPC Flow Logs")
        logger.info("=" * 80)
        logger.info("Configuration:")
        logger.info(f"  Region: {self.region}")
        logger.info(f"  Database: {self.database}")
        logger.info(f"  Table: {self.table}")
        logger.info(f"  S3 Bucket: {self.bucket}")
        logger.info(f"  Account ID: {self.account_id}")
        if self.vpc_id:
            logger.info(f"  VPC ID: {self.vpc_id}")
        logger.info(f"  Query Results: {self.output_location}")

        if not self.check_access():
            return BootstrapResult(success=False)

        self.configure_results_location()

        logger.info("\n[STEP 1] Create database")
        if not self.create_database("VPC Flow Logs analysis database"):
            return BootstrapResult(success=False)

        logger.info("\n[STEP 2] Create table")
        ddl = create_flow_logs_table_sql(
            self.database, self.table, self.log_location, projection=self.projection
        )
        if not self.create_table(ddl):
            return BootstrapResult(success=False)

        logger.info("\n[STEP 3] Register partitions")
        report = None
        if self.projection:
            logger.info("Partition projection enabled, no partitions to register")
        else:
            keys = self.plan_partitions(plan)
            if keys:
                report = self.add_partitions(keys)
            else:
                logger.info("No partitions requested")

        logger.info("\n[STEP 4] Verify")
        test_result = self.run_test_query(count_records_sql(self.database, self.table))
        test_state = test_result.state if test_result else None

        success = report is None or report.succeeded
        self.print_summary(report)
        return BootstrapResult(success=success, partitions=report, test_query_state=test_state)

    def print_summary(self, report: Optional[ReconcileReport]) -> None:
        logger.info("")
        logger.info("=" * 80)
        logger.info("Athena Setup Complete!")
        logger.info("=" * 80)
        logger.info("Configuration:")
        logger.info(f"  Database: {self.database}")
        logger.info(f"  Table: {self.database}.{self.table}")
        logger.info(f"  Region: {self.region}")
        logger.info(f"  Query Results: {self.output_location}")
        if report is not None:
            logger.info(f"  Partitions: {report.summary()}")
        logger.info("")
        logger.info("Next Steps:")
        logger.info(f"1. Open Athena Console: https://console.aws.amazon.com/athena/home?region={self.region}")
        logger.info(f"2. Select database: {self.database}")
        logger.info(f"3. Run queries against table: {self.table}")
        logger.info("")
        logger.info("Example Query:")
        logger.info(f"  SELECT * FROM {self.database}.{self.table} LIMIT 100;")
        logger.info("")
        logger.info("Note: It may take 5-15 minutes for flow logs to appear after VPC Flow Logs are enabled.")


class CloudTrailAthenaBootstrapper(_AthenaBootstrapper):
    """Creates an Athena table over a CloudTrail dataset already in S3."""

    def __init__(
        self,
        bucket: str,
        dataset_prefix: str,
        trail_account_id: str,
        trail_region: str,
        database: str = "cloudtrail_demo",
        table: str = "cloudtrail_logs",
        region: Optional[str] = None,
        results_bucket: Optional[str] = None,
        catalog: str = "glue",
        poll_policy: Optional[PollPolicy] = None,
        clients: Optional[dict] = None,
    ):
        """
        Args:
            bucket: Bucket holding the uploaded dataset.
            dataset_prefix: Key prefix above ``AWSLogs/``, ending in '/', may be empty.
            trail_account_id: Account id in the CloudTrail key layout.
            trail_region: Region in the CloudTrail key layout.
        """
        if dataset_prefix and not dataset_prefix.endswith("/"):
            raise InvalidInputError(f"dataset_prefix must end with '/': {dataset_prefix!r}")
        if not ACCOUNT_ID_RE.match(trail_account_id or ""):
            raise InvalidInputError("trail account id must be a 12-digit number")

        super().__init__(
            bucket,
            database,
            table,
            region=region,
            results_bucket=results_bucket,
            catalog=catalog,
            poll_policy=poll_policy,
            clients=clients,
        )
        self.dataset_prefix = dataset_prefix
        self.trail_account_id = trail_account_id
        self.trail_region = trail_region

    @property
    def log_prefix(self) -> str:
        return (
            f"{self.dataset_prefix}AWSLogs/{self.trail_account_id}"
            f"/CloudTrail/{self.trail_region}/"
        )

    def load_dataset(self, dataset: CloudTrailDataset, skip_download: bool = False) -> bool:
        """
        Fetch the dataset locally and upload it under ``dataset_prefix``.

        Returns:
            bool: True if every log file was uploaded.
        """
        logger.info("=" * 80)
        logger.info("Loading CloudTrail dataset")
        logger.info(f"  Download Directory: {dataset.download_dir}")
        logger.info(f"  Destination: s3://{self.bucket}/{self.dataset_prefix}")
        logger.info("=" * 80)

        if get_caller_account(self.sts_client) is None:
            return False
        if not check_s3_bucket_exists(self.bucket, self.s3_client):
            logger.error(f"S3 bucket '{self.bucket}' does not exist or is not accessible")
            return False

        files = dataset.prepare(skip_download=skip_download)
        if not files:
            logger.error(f"No CloudTrail log files found under {dataset.logs_dir}")
            return False

        results = dataset.upload(self.s3_client, self.bucket, self.dataset_prefix)
        return results['success']

    def setup(self, validate_calendar: bool = False) -> BootstrapResult:
        logger.info("=" * 80)
        logger.info("Starting Athena setup for CloudTrail logs")
        logger.info("=" * 80)

        if not self.check_access():
            return BootstrapResult(success=False)

        self.configure_results_location()

        logger.info("\n[STEP 1] Create database")
        if not self.create_database("CloudTrail analysis database"):
            return BootstrapResult(success=False)

        logger.info("\n[STEP 2] Create table")
        ddl = create_cloudtrail_table_sql(
            self.database, self.table, f"s3://{self.bucket}/{self.dataset_prefix}"
        )
        if not self.create_table(ddl):
            return BootstrapResult(success=False)

        logger.info("\n[STEP 3] Discover and register partitions")
        listing = iter_s3_keys(self.bucket, self.log_prefix, self.s3_client)
        keys = sorted(discover_partitions(self.log_prefix, listing, validate_calendar))
        logger.info(f"Found {len(keys)} unique date partitions")

        catalog = self.build_catalog(
            static_columns=CLOUDTRAIL_PARTITION_COLUMNS[:2],
            static_values=(self.trail_account_id, self.trail_region),
        )
        reconciler = PartitionReconciler(catalog, f"s3://{self.bucket}/{self.log_prefix}")
        report = reconciler.reconcile(self.table, keys)

        logger.info("\n[STEP 4] Verify")
        test_result = self.run_test_query(top_events_sql(self.database, self.table))
        test_state = test_result.state if test_result else None
        if test_result is not None and test_result.succeeded:
            self.log_top_events(test_result.query_id)

        logger.info("=" * 80)
        logger.info(f"CloudTrail setup complete: {report.summary()}")
        logger.info("=" * 80)
        return BootstrapResult(success=report.succeeded, partitions=report, test_query_state=test_state)

    def log_top_events(self, query_id: str) -> None:
        try:
            rows = self.runner.get_rows(query_id)
        except ClientError as e:
            logger.warning(f"Could not fetch test query results: {e}")
            return
        # First row is the header
        for row in rows[1:]:
            logger.info(f"  {row[0]}: {row[1]}")
