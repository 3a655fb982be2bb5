"""
Download the public flaws.cloud CloudTrail dataset and upload it to S3.

The dataset is a tarball of gzipped CloudTrail JSON files laid out as
``flaws.cloud/AWSLogs/<account>/CloudTrail/<region>/YYYY/MM/DD/``. Files
are uploaded under the same relative paths so date partitions can be
discovered from the bucket afterwards.
"""

import shutil
import sys
import tarfile
from pathlib import Path
from typing import Any, Dict, List

import requests
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError

from .exceptions import FlowLogAthenaError
from .utils.logger import get_logger

logger = get_logger(__name__)

DATASET_URL = "https://summitroute.com/downloads/flaws_cloudtrail_logs.tar"
TARBALL_NAME = "flaws_cloudtrail_logs.tar"
DATASET_DIR = "flaws.cloud"
LOG_FILE_PATTERN = "*.json.gz"


class CloudTrailDataset:
    """Local copy of the flaws.cloud CloudTrail logs."""

    # Multipart upload threshold: 100MB
    MULTIPART_THRESHOLD = 100 * 1024 * 1024

    # Multipart chunk size: 50MB
    MULTIPART_CHUNKSIZE = 50 * 1024 * 1024

    def __init__(self, download_dir: str, url: str = DATASET_URL, use_multipart: bool = True):
        """
        Initialize the dataset.

        Args:
            download_dir: Directory for the tarball and the extracted logs.
            url: Tarball URL.
            use_multipart: Whether to use multipart upload for large files.
        """
        self.download_dir = Path(download_dir)
        self.url = url
        self.transfer_config = TransferConfig(
            multipart_threshold=self.MULTIPART_THRESHOLD if use_multipart else sys.maxsize,
            multipart_chunksize=self.MULTIPART_CHUNKSIZE,
            max_concurrency=10,
            use_threads=True,
        )

    @property
    def tarball(self) -> Path:
        return self.download_dir / TARBALL_NAME

    @property
    def logs_dir(self) -> Path:
        return self.download_dir / DATASET_DIR

    def download(self) -> Path:
        """
        Download the tarball, unless it is already present.

        Returns:
            Path to the tarball.

        Raises:
            requests.RequestException: If the download fails. A partial file
                is removed first.
        """
        self.download_dir.mkdir(parents=True, exist_ok=True)

        if self.tarball.exists():
            logger.info(f"Tar file already exists at {self.tarball}, using existing file")
            return self.tarball

        logger.info(f"Downloading CloudTrail dataset from {self.url}")
        logger.info("Size: ~200MB (this may take a few minutes)")

        try:
            response = requests.get(self.url, stream=True, timeout=30)
            response.raise_for_status()

            total_size = int(response.headers.get('content-length', 0))

            with open(self.tarball, 'wb') as f:
                downloaded = 0
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
                        downloaded += len(chunk)

                        # Log progress every 10MB
                        if total_size > 0 and downloaded % (10 * 1024 * 1024) < 8192:
                            logger.info(f"Progress: {downloaded / total_size * 100:.1f}%")

            logger.info(f"Download complete: {self.tarball.stat().st_size / (1024 * 1024):.2f} MB")
            return self.tarball

        except requests.RequestException as e:
            logger.error(f"Failed to download {self.url}: {e}")
            if self.tarball.exists():
                self.tarball.unlink()
            raise

    def extract(self) -> Path:
        """
        Extract the tarball into the download directory.

        Returns:
            Path to the extracted ``flaws.cloud`` directory.

        Raises:
            FlowLogAthenaError: A member would be written outside the
                download directory.
        """
        logger.info(f"Extracting {self.tarball}")
        root = self.download_dir.resolve()

        with tarfile.open(self.tarball) as tar:
            members = tar.getmembers()
            for member in members:
                target = (root / member.name).resolve()
                if target != root and root not in target.parents:
                    raise FlowLogAthenaError(f"Refusing to extract {member.name!r} outside {root}")
            tar.extractall(root, members=members)

        logger.info("Extraction complete")
        return self.logs_dir

    def log_files(self) -> List[Path]:
        if not self.logs_dir.is_dir():
            return []
        return sorted(self.logs_dir.rglob(LOG_FILE_PATTERN))

    def prepare(self, skip_download: bool = False) -> List[Path]:
        """
        Make the extracted log files available locally.

        Args:
            skip_download: Use files extracted by an earlier run.

        Raises:
            FlowLogAthenaError: ``skip_download`` is set and no extracted
                logs exist.
        """
        if skip_download:
            logger.info("Skipping download (using existing files)")
            if not self.logs_dir.is_dir():
                raise FlowLogAthenaError(
                    f"CloudTrail logs not found at {self.logs_dir}. Run without --skip-download first"
                )
        else:
            self.download()
            self.extract()

        files = self.log_files()
        logger.info(f"Found {len(files)} CloudTrail log files")
        return files

    def upload(self, s3_client: Any, bucket: str, prefix: str) -> Dict[str, Any]:
        """
        Upload every ``*.json.gz`` file, keeping paths relative to ``flaws.cloud/``.

        Args:
            s3_client: Boto3 S3 client.
            bucket: Destination bucket.
            prefix: Key prefix above ``AWSLogs/``, ending in '/' or empty.

        Returns:
            dict: ``uploaded``, ``failed`` and ``total`` counts, the
            ``failed_files`` keys, and ``success``.
        """
        files = self.log_files()
        logger.info(f"Uploading {len(files)} files to s3://{bucket}/{prefix}")

        results: Dict[str, Any] = {
            'uploaded': 0,
            'failed': 0,
            'total': len(files),
            'failed_files': [],
        }

        for path in files:
            key = prefix + path.relative_to(self.logs_dir).as_posix()
            try:
                s3_client.upload_file(str(path), bucket, key, Config=self.transfer_config)
                results['uploaded'] += 1
            except (ClientError, S3UploadFailedError) as e:
                logger.error(f"Failed to upload {key}: {e}")
                results['failed'] += 1
                results['failed_files'].append(key)

        logger.info(
            f"Upload complete: {results['uploaded']} uploaded, {results['failed']} failed"
        )
        results['success'] = results['failed'] == 0
        return results

    def cleanup(self) -> None:
        logger.info(f"Removing local files in {self.download_dir}")
        shutil.rmtree(self.download_dir, ignore_errors=True)
