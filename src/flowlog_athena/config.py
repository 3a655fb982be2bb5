"""Configuration management for the flow log Athena tooling."""

import os
from typing import Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class AWSConfig(BaseModel):
    """AWS configuration settings."""

    region: str = Field(
        default_factory=lambda: os.getenv("REGION") or os.getenv("AWS_REGION", "us-east-1")
    )
    account_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("ACCOUNT_ID") or os.getenv("AWS_ACCOUNT_ID")
    )


class FlowLogsConfig(BaseModel):
    """S3 location of delivered VPC Flow Logs."""

    bucket: str = Field(default_factory=lambda: os.getenv("BUCKET_NAME", ""))
    vpc_id: Optional[str] = Field(default_factory=lambda: os.getenv("VPC_ID"))


class CloudTrailConfig(BaseModel):
    """Local working directory for the CloudTrail sample dataset."""

    download_dir: str = Field(default_factory=lambda: os.getenv("DOWNLOAD_DIR", "./data/cloudtrail"))


class AthenaConfig(BaseModel):
    """Athena database, table and query execution settings."""

    database: str = Field(default_factory=lambda: os.getenv("DATABASE_NAME", "vpc_flow_logs"))
    table: str = Field(default_factory=lambda: os.getenv("TABLE_NAME", "flow_logs"))
    results_bucket: str = Field(default_factory=lambda: os.getenv("RESULTS_BUCKET", ""))
    results_prefix: str = "athena-results/"
    workgroup: str = Field(default_factory=lambda: os.getenv("ATHENA_WORKGROUP", "primary"))
    catalog: str = Field(default_factory=lambda: os.getenv("PARTITION_CATALOG", "glue"))
    poll_interval: float = Field(default_factory=lambda: float(os.getenv("ATHENA_POLL_INTERVAL", "1.0")))
    max_poll_attempts: int = Field(default_factory=lambda: int(os.getenv("ATHENA_MAX_POLL_ATTEMPTS", "60")))

    @property
    def output_location(self) -> str:
        """S3 URI where Athena writes query results."""
        return f"s3://{self.results_bucket}/{self.results_prefix}"


class Config(BaseModel):
    """Main configuration object."""

    aws: AWSConfig = Field(default_factory=AWSConfig)
    flow_logs: FlowLogsConfig = Field(default_factory=FlowLogsConfig)
    athena: AthenaConfig = Field(default_factory=AthenaConfig)
    cloudtrail: CloudTrailConfig = Field(default_factory=CloudTrailConfig)

    # Project settings
    project_name: str = "flowlog-athena"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "dev"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


# Global configuration instance
config = Config()
