"""
Register date partitions in the catalog.

The reconciler only ever adds partitions. Each add is idempotent: a
partition that is already registered counts as success, so a run can be
repeated safely after a partial failure.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set

from botocore.exceptions import ClientError
from pydantic import BaseModel

from .athena.query_runner import AthenaQueryRunner
from .athena.sql import DATE_PARTITION_COLUMNS, add_partition_sql
from .exceptions import InvalidInputError, QueryFailedError
from .partitions import PartitionKey, partition_location
from .utils.logger import get_logger

logger = get_logger(__name__)


class PartitionStatus(str, Enum):
    REGISTERED = "registered"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class PartitionOutcome(BaseModel):
    """Result of registering one partition."""

    key: PartitionKey
    location: str
    status: PartitionStatus
    error: Optional[str] = None


class ReconcileReport(BaseModel):
    """Per-key outcomes of one reconcile run, in issuance order."""

    table: str
    outcomes: List[PartitionOutcome] = []

    def _count(self, status: PartitionStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def registered(self) -> int:
        return self._count(PartitionStatus.REGISTERED)

    @property
    def already_existed(self) -> int:
        return self._count(PartitionStatus.ALREADY_EXISTS)

    @property
    def failed(self) -> int:
        return self._count(PartitionStatus.FAILED)

    @property
    def failed_keys(self) -> List[PartitionKey]:
        return [o.key for o in self.outcomes if o.status == PartitionStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        text = (
            f"{self.table}: {len(self.outcomes)} partition(s), "
            f"{self.registered} registered, {self.already_existed} already existed, "
            f"{self.failed} failed"
        )
        if self.failed:
            text += " (" + ", ".join(str(k) for k in self.failed_keys) + ")"
        return text


class PartitionCatalog(Protocol):
    """Somewhere partitions can be added."""

    def add_partition(self, table: str, key: PartitionKey, location: str) -> PartitionStatus:
        """Return REGISTERED or ALREADY_EXISTS; raise on any other failure."""
        ...


class GluePartitionCatalog:
    """Adds partitions through the Glue Data Catalog API."""

    def __init__(self, glue_client: Any, database: str, static_values: Sequence[str] = ()):
        """
        Initialize the Glue catalog.

        Args:
            glue_client: Boto3 Glue client.
            database: Glue (Athena) database name.
            static_values: Partition values that precede year/month/day,
                e.g. (account, region) for CloudTrail tables.
        """
        self.glue_client = glue_client
        self.database = database
        self.static_values = list(static_values)
        self._descriptors: Dict[str, Dict[str, Any]] = {}

    def _storage_descriptor(self, table: str) -> Dict[str, Any]:
        if table not in self._descriptors:
            response = self.glue_client.get_table(DatabaseName=self.database, Name=table)
            self._descriptors[table] = response['Table']['StorageDescriptor']
        return self._descriptors[table]

    def add_partition(self, table: str, key: PartitionKey, location: str) -> PartitionStatus:
        storage_descriptor = dict(self._storage_descriptor(table))
        storage_descriptor['Location'] = location

        try:
            self.glue_client.create_partition(
                DatabaseName=self.database,
                TableName=table,
                PartitionInput={
                    'Values': self.static_values + list(key),
                    'StorageDescriptor': storage_descriptor,
                },
            )
            return PartitionStatus.REGISTERED
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code == 'AlreadyExistsException':
                return PartitionStatus.ALREADY_EXISTS
            raise


class AthenaPartitionCatalog:
    """
    Adds partitions with ``ALTER TABLE ... ADD IF NOT EXISTS PARTITION``.

    Athena reports success whether or not the partition was new, so this
    backend never returns ALREADY_EXISTS for a successful statement.
    """

    def __init__(
        self,
        runner: AthenaQueryRunner,
        database: str,
        static_columns: Sequence[str] = (),
        static_values: Sequence[str] = (),
    ):
        if len(static_columns) != len(static_values):
            raise InvalidInputError("static_columns and static_values must have the same length")
        self.runner = runner
        self.database = database
        self.columns = list(static_columns) + list(DATE_PARTITION_COLUMNS)
        self.static_values = list(static_values)

    def add_partition(self, table: str, key: PartitionKey, location: str) -> PartitionStatus:
        sql = add_partition_sql(
            self.database, table, self.columns, self.static_values + list(key), location
        )
        try:
            self.runner.run_query(sql, database=self.database)
        except QueryFailedError as e:
            if e.reason and 'AlreadyExists' in e.reason:
                return PartitionStatus.ALREADY_EXISTS
            raise
        return PartitionStatus.REGISTERED


class PartitionReconciler:
    """Applies partition keys to a catalog table one at a time."""

    def __init__(self, catalog: PartitionCatalog, location_root: str):
        """
        Args:
            catalog: Where partitions are registered.
            location_root: S3 URI of the dated folders, ending in '/'.
        """
        if not location_root or not location_root.endswith("/"):
            raise InvalidInputError(f"location_root must end with '/': {location_root!r}")
        self.catalog = catalog
        self.location_root = location_root

    def reconcile(self, table: str, keys: Iterable[PartitionKey]) -> ReconcileReport:
        """
        Register every key, continuing past failures.

        Args:
            table: Catalog table name.
            keys: Partition keys; duplicates are applied once.

        Returns:
            ReconcileReport with one outcome per distinct key.
        """
        report = ReconcileReport(table=table)
        seen: Set[PartitionKey] = set()

        for key in keys:
            key = PartitionKey(*key)
            if key in seen:
                continue
            seen.add(key)

            location = partition_location(self.location_root, key)
            context = {'table': table, 'partition': str(key)}
            try:
                status = self.catalog.add_partition(table, key, location)
                outcome = PartitionOutcome(key=key, location=location, status=status)
                context['status'] = status.value
                if status == PartitionStatus.ALREADY_EXISTS:
                    logger.info(f"  Partition exists: {key}", extra=context)
                else:
                    logger.info(f"  Partition added: {key}", extra=context)
            except Exception as e:
                context['status'] = PartitionStatus.FAILED.value
                logger.error(f"  Partition failed: {key}: {e}", extra=context)
                outcome = PartitionOutcome(
                    key=key, location=location, status=PartitionStatus.FAILED, error=str(e)
                )
            report.outcomes.append(outcome)

        if report.succeeded:
            logger.info(report.summary())
        else:
            logger.warning(report.summary())
        return report
