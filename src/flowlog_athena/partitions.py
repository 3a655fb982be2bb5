"""
Date partition keys for delivered AWS logs.

VPC Flow Logs and CloudTrail both deliver objects under
``<root>/<YYYY>/<MM>/<DD>/<object>``. This module turns S3 listings and
date ranges into ``PartitionKey`` values; applying them to a catalog lives in
``flowlog_athena.reconciler``.
"""

import re
from datetime import date, timedelta
from typing import Iterable, Iterator, List, NamedTuple, Optional, Set

from .exceptions import InvalidInputError
from .utils.logger import get_logger

logger = get_logger(__name__)

DATE_PATH_RE = re.compile(r"^(\d{4})/(\d{2})/(\d{2})/")
DATE_ARG_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class PartitionKey(NamedTuple):
    """One day's worth of logs, as zero-padded strings."""

    year: str
    month: str
    day: str

    @classmethod
    def from_date(cls, value: date) -> "PartitionKey":
        return cls(f"{value.year:04d}", f"{value.month:02d}", f"{value.day:02d}")

    def as_date(self) -> date:
        """Calendar date of the key. Raises ValueError for e.g. month 13."""
        return date(int(self.year), int(self.month), int(self.day))

    @property
    def path(self) -> str:
        return f"{self.year}/{self.month}/{self.day}/"

    @property
    def dt(self) -> str:
        return f"{self.year}-{self.month}-{self.day}"

    def __str__(self) -> str:
        return self.dt


def _require_trailing_slash(prefix: str, name: str) -> None:
    if not prefix or not prefix.endswith("/"):
        raise InvalidInputError(f"{name} must end with '/': {prefix!r}")


def partition_location(root_prefix: str, key: PartitionKey) -> str:
    """Location of a partition: ``root_prefix + YYYY/MM/DD/``."""
    _require_trailing_slash(root_prefix, "root_prefix")
    return f"{root_prefix}{key.year}/{key.month}/{key.day}/"


def is_calendar_date(key: PartitionKey) -> bool:
    try:
        key.as_date()
    except ValueError:
        return False
    return True


def discover_partitions(
    root_prefix: str,
    listing: Iterable[str],
    validate_calendar: bool = False,
) -> Set[PartitionKey]:
    """
    Collect the distinct dates present in an object listing.

    Only keys of the form ``root_prefix + YYYY/MM/DD/...`` count; anything
    else in the bucket is ignored. Date components are taken verbatim unless
    ``validate_calendar`` is set, in which case impossible dates are dropped.

    Args:
        root_prefix: Common prefix of the dated folders, ending in '/'.
        listing: Object keys, consumed once. Errors raised while iterating
            propagate to the caller.
        validate_calendar: Drop keys that are not real calendar dates.

    Returns:
        Set of partition keys, possibly empty.
    """
    _require_trailing_slash(root_prefix, "root_prefix")

    found: Set[PartitionKey] = set()
    rejected: Set[PartitionKey] = set()
    for object_key in listing:
        if not object_key.startswith(root_prefix):
            continue
        match = DATE_PATH_RE.match(object_key[len(root_prefix):])
        if not match:
            continue
        key = PartitionKey(*match.groups())
        if key in found or key in rejected:
            continue
        if validate_calendar and not is_calendar_date(key):
            logger.warning(f"Skipping non-calendar date folder {root_prefix}{key.path}")
            rejected.add(key)
            continue
        found.add(key)

    logger.info(f"Discovered {len(found)} date partition(s) under {root_prefix}")
    return found


class SpeculativePartitions:
    """Restartable sequence of the ``days`` dates ending at ``reference_date``, newest first."""

    def __init__(self, reference_date: date, days: int):
        self.reference_date = reference_date
        self.days = days

    def __iter__(self) -> Iterator[PartitionKey]:
        for offset in range(self.days):
            yield PartitionKey.from_date(self.reference_date - timedelta(days=offset))

    def __len__(self) -> int:
        return self.days

    def __repr__(self) -> str:
        return f"SpeculativePartitions({self.reference_date.isoformat()}, days={self.days})"


def generate_speculative_partitions(
    reference_date: Optional[date] = None,
    days: int = 0,
) -> SpeculativePartitions:
    """
    Partition keys for the last ``days`` days, without looking at S3.

    Args:
        reference_date: Newest date to include. Defaults to today.
        days: Number of days, must be >= 0.

    Returns:
        A lazy sequence that can be iterated more than once.
    """
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        raise InvalidInputError(f"days must be a non-negative integer, got {days!r}")
    return SpeculativePartitions(reference_date or date.today(), days)


def parse_partition_dates(text: str) -> List[PartitionKey]:
    """
    Parse a comma separated list of YYYY-MM-DD dates.

    Malformed entries are skipped with a warning, matching the
    ``--partition-dates`` behavior of the shell bootstrap.
    """
    keys: List[PartitionKey] = []
    for raw in text.split(","):
        value = raw.strip()
        if not value:
            continue
        match = DATE_ARG_RE.match(value)
        if not match:
            logger.warning(f"Invalid date format: {value} (expected YYYY-MM-DD), skipping")
            continue
        key = PartitionKey(*match.groups())
        if key not in keys:
            keys.append(key)
    return keys
