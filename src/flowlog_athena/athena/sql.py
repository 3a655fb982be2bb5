"""SQL and DDL text for the Athena flow log and CloudTrail tables."""

import re
from typing import Sequence, Tuple

from ..exceptions import InvalidInputError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Default VPC Flow Log format (version 2)
FLOW_LOG_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("version", "int"),
    ("account_id", "string"),
    ("interface_id", "string"),
    ("srcaddr", "string"),
    ("dstaddr", "string"),
    ("srcport", "int"),
    ("dstport", "int"),
    ("protocol", "bigint"),
    ("packets", "bigint"),
    ("bytes", "bigint"),
    ("start", "bigint"),
    ("end", "bigint"),
    ("action", "string"),
    ("log_status", "string"),
)

DATE_PARTITION_COLUMNS = ("year", "month", "day")
CLOUDTRAIL_PARTITION_COLUMNS = ("account", "region", "year", "month", "day")

RESERVED_COLUMNS = {"end"}


def quote_identifier(name: str) -> str:
    """Validate a database, table or column name."""
    if not IDENTIFIER_RE.match(name or ""):
        raise InvalidInputError(f"Invalid identifier: {name!r}")
    return name


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def qualified_name(database: str, table: str) -> str:
    return f"{quote_identifier(database)}.{quote_identifier(table)}"


def _column(name: str) -> str:
    quote_identifier(name)
    return f"`{name}`" if name in RESERVED_COLUMNS else name


def create_database_sql(database: str, location: str, comment: str = "VPC Flow Logs analysis database") -> str:
    return (
        f"CREATE DATABASE IF NOT EXISTS {quote_identifier(database)}\n"
        f"COMMENT {quote_literal(comment)}\n"
        f"LOCATION {quote_literal(location)};"
    )


def create_flow_logs_table_sql(
    database: str,
    table: str,
    location: str,
    projection: bool = False,
    projection_start_year: int = 2020,
) -> str:
    """
    DDL for a VPC Flow Logs table partitioned by year, month and day.

    With ``projection`` the partitions are derived by Athena from the
    ``YYYY/MM/DD/`` layout and never need registering.
    """
    columns = ",\n".join(f"  {_column(name)} {col_type}" for name, col_type in FLOW_LOG_COLUMNS)
    partitions = ",\n".join(f"  {name} string" for name in DATE_PARTITION_COLUMNS)

    properties = ['  "skip.header.line.count"="1"']
    if projection:
        properties.extend([
            '  "projection.enabled"="true"',
            '  "projection.year.type"="date"',
            '  "projection.year.format"="yyyy"',
            f'  "projection.year.range"="{int(projection_start_year)},NOW"',
            '  "projection.year.interval"="1"',
            '  "projection.year.interval.unit"="YEARS"',
            '  "projection.month.type"="integer"',
            '  "projection.month.range"="1,12"',
            '  "projection.month.digits"="2"',
            '  "projection.day.type"="integer"',
            '  "projection.day.range"="1,31"',
            '  "projection.day.digits"="2"',
            f'  "storage.location.template"="{location}${{year}}/${{month}}/${{day}}/"',
        ])

    return (
        f"CREATE EXTERNAL TABLE IF NOT EXISTS {qualified_name(database, table)} (\n"
        f"{columns}\n"
        f")\n"
        f"PARTITIONED BY (\n{partitions}\n)\n"
        f"ROW FORMAT DELIMITED\n"
        f"FIELDS TERMINATED BY ' '\n"
        f"LOCATION {quote_literal(location)}\n"
        f"TBLPROPERTIES (\n" + ",\n".join(properties) + "\n);"
    )


def create_cloudtrail_table_sql(database: str, table: str, location: str) -> str:
    """DDL for CloudTrail logs, schema per the Athena CloudTrail documentation."""
    partitions = ",\n".join(f"  {name} STRING" for name in CLOUDTRAIL_PARTITION_COLUMNS)
    return (
        f"CREATE EXTERNAL TABLE IF NOT EXISTS {qualified_name(database, table)} (\n"
        "  eventversion STRING,\n"
        "  useridentity STRUCT<\n"
        "    type:STRING,\n"
        "    principalid:STRING,\n"
        "    arn:STRING,\n"
        "    accountid:STRING,\n"
        "    invokedby:STRING,\n"
        "    accesskeyid:STRING,\n"
        "    userName:STRING,\n"
        "    sessioncontext:STRUCT<\n"
        "      attributes:STRUCT<\n"
        "        mfaauthenticated:STRING,\n"
        "        creationdate:STRING>,\n"
        "      sessionissuer:STRUCT<\n"
        "        type:STRING,\n"
        "        principalId:STRING,\n"
        "        arn:STRING,\n"
        "        accountId:STRING,\n"
        "        userName:STRING>>>,\n"
        "  eventtime STRING,\n"
        "  eventsource STRING,\n"
        "  eventname STRING,\n"
        "  awsregion STRING,\n"
        "  sourceipaddress STRING,\n"
        "  useragent STRING,\n"
        "  errorcode STRING,\n"
        "  errormessage STRING,\n"
        "  requestparameters STRING,\n"
        "  responseelements STRING,\n"
        "  additionaleventdata STRING,\n"
        "  requestid STRING,\n"
        "  eventid STRING,\n"
        "  resources ARRAY<STRUCT<\n"
        "    ARN:STRING,\n"
        "    accountId:STRING,\n"
        "    type:STRING>>,\n"
        "  eventtype STRING,\n"
        "  apiversion STRING,\n"
        "  readonly STRING,\n"
        "  recipientaccountid STRING,\n"
        "  serviceeventdetails STRING,\n"
        "  sharedeventid STRING,\n"
        "  vpcendpointid STRING\n"
        ")\n"
        f"PARTITIONED BY (\n{partitions}\n)\n"
        "ROW FORMAT SERDE 'com.amazon.emr.hive.serde.CloudTrailSerde'\n"
        "STORED AS INPUTFORMAT 'com.amazon.emr.cloudtrail.CloudTrailInputFormat'\n"
        "OUTPUTFORMAT 'org.apache.hadoop.hive.ql.io.HiveIgnoreKeyTextOutputFormat'\n"
        f"LOCATION {quote_literal(location)};"
    )


def add_partition_sql(
    database: str,
    table: str,
    columns: Sequence[str],
    values: Sequence[str],
    location: str,
) -> str:
    """``ALTER TABLE ... ADD IF NOT EXISTS PARTITION`` for one partition."""
    if len(columns) != len(values):
        raise InvalidInputError(
            f"{len(columns)} partition column(s) but {len(values)} value(s)"
        )
    partition_spec = ", ".join(
        f"{quote_identifier(col)}={quote_literal(val)}" for col, val in zip(columns, values)
    )
    return (
        f"ALTER TABLE {qualified_name(database, table)}\n"
        f"ADD IF NOT EXISTS PARTITION ({partition_spec})\n"
        f"LOCATION {quote_literal(location)};"
    )


def count_records_sql(database: str, table: str) -> str:
    return f"SELECT COUNT(*) AS record_count\nFROM {qualified_name(database, table)}\nLIMIT 10;"


def top_events_sql(database: str, table: str, limit: int = 10) -> str:
    return (
        "SELECT\n"
        "  eventname,\n"
        "  COUNT(*) AS event_count\n"
        f"FROM {qualified_name(database, table)}\n"
        "GROUP BY eventname\n"
        "ORDER BY event_count DESC\n"
        f"LIMIT {int(limit)};"
    )
