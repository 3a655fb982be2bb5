"""Unit tests for the CloudTrail sample dataset download and upload."""

import io
import tarfile

import pytest
import requests
from unittest.mock import Mock, patch
from boto3.exceptions import S3UploadFailedError

from flowlog_athena.dataset import DATASET_URL, CloudTrailDataset
from flowlog_athena.exceptions import FlowLogAthenaError

LOG_PATH = "flaws.cloud/AWSLogs/811596193553/CloudTrail/us-west-2/2017/06/01/a.json.gz"


def write_tarball(path, members):
    """Write a tar file whose members are (name, bytes) pairs."""
    with tarfile.open(path, "w") as tar:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))


@pytest.fixture
def dataset(tmp_path):
    return CloudTrailDataset(str(tmp_path / "cloudtrail"))


class TestDownload:
    """Test the streamed tarball download."""

    @patch('flowlog_athena.dataset.requests.get')
    def test_streams_to_tarball(self, mock_get, dataset):
        response = Mock()
        response.headers = {'content-length': '6'}
        response.iter_content.return_value = [b"abc", b"", b"def"]
        mock_get.return_value = response

        path = dataset.download()

        assert path == dataset.tarball
        assert path.read_bytes() == b"abcdef"
        mock_get.assert_called_once_with(DATASET_URL, stream=True, timeout=30)

    @patch('flowlog_athena.dataset.requests.get')
    def test_existing_tarball_reused(self, mock_get, dataset):
        dataset.download_dir.mkdir(parents=True)
        dataset.tarball.write_bytes(b"cached")

        assert dataset.download() == dataset.tarball
        mock_get.assert_not_called()

    @patch('flowlog_athena.dataset.requests.get')
    def test_failure_removes_partial_file(self, mock_get, dataset):
        response = Mock()
        response.headers = {}

        def broken_stream(chunk_size):
            yield b"partial"
            raise requests.ConnectionError("connection reset")

        response.iter_content.side_effect = broken_stream
        mock_get.return_value = response

        with pytest.raises(requests.RequestException):
            dataset.download()
        assert not dataset.tarball.exists()


class TestExtract:
    """Test tarball extraction."""

    def test_extracts_log_files(self, dataset):
        dataset.download_dir.mkdir(parents=True)
        write_tarball(dataset.tarball, [(LOG_PATH, b"\x1f\x8b"), ("flaws.cloud/README", b"hi")])

        assert dataset.extract() == dataset.logs_dir
        assert [p.name for p in dataset.log_files()] == ["a.json.gz"]

    def test_rejects_members_outside_download_dir(self, dataset):
        dataset.download_dir.mkdir(parents=True)
        write_tarball(dataset.tarball, [("../escape.json.gz", b"x")])

        with pytest.raises(FlowLogAthenaError):
            dataset.extract()
        assert not (dataset.download_dir.parent / "escape.json.gz").exists()


class TestPrepare:
    """Test getting local files ready for upload."""

    @patch.object(CloudTrailDataset, 'extract')
    @patch.object(CloudTrailDataset, 'download')
    def test_downloads_and_extracts(self, mock_download, mock_extract, dataset):
        assert dataset.prepare() == []
        mock_download.assert_called_once()
        mock_extract.assert_called_once()

    @patch.object(CloudTrailDataset, 'download')
    def test_skip_download_uses_existing_files(self, mock_download, dataset):
        log = dataset.download_dir / LOG_PATH
        log.parent.mkdir(parents=True)
        log.write_bytes(b"\x1f\x8b")

        assert dataset.prepare(skip_download=True) == [log]
        mock_download.assert_not_called()

    def test_skip_download_without_files(self, dataset):
        with pytest.raises(FlowLogAthenaError):
            dataset.prepare(skip_download=True)


class TestUpload:
    """Test uploading extracted logs to S3."""

    @pytest.fixture
    def extracted(self, dataset):
        for name in (LOG_PATH, LOG_PATH.replace("06/01/a", "06/02/b")):
            log = dataset.download_dir / name
            log.parent.mkdir(parents=True, exist_ok=True)
            log.write_bytes(b"\x1f\x8b")
        (dataset.logs_dir / "notes.txt").write_text("not a log")
        return dataset

    def test_keys_keep_relative_paths(self, extracted):
        s3_client = Mock()

        results = extracted.upload(s3_client, "my-bucket", "cloudtrail-demo/flaws.cloud/")

        assert results['success']
        assert results['uploaded'] == 2
        keys = [c.args[2] for c in s3_client.upload_file.call_args_list]
        assert keys == [
            "cloudtrail-demo/flaws.cloud/AWSLogs/811596193553/CloudTrail/us-west-2/2017/06/01/a.json.gz",
            "cloudtrail-demo/flaws.cloud/AWSLogs/811596193553/CloudTrail/us-west-2/2017/06/02/b.json.gz",
        ]
        assert s3_client.upload_file.call_args.kwargs['Config'] is extracted.transfer_config

    def test_failed_file_does_not_stop_upload(self, extracted):
        s3_client = Mock()
        s3_client.upload_file.side_effect = [S3UploadFailedError("denied"), None]

        results = extracted.upload(s3_client, "my-bucket", "")

        assert not results['success']
        assert results['uploaded'] == 1
        assert results['failed_files'] == [
            "AWSLogs/811596193553/CloudTrail/us-west-2/2017/06/01/a.json.gz"
        ]


class TestCleanup:
    """Test removing local files."""

    def test_removes_download_dir(self, dataset):
        dataset.download_dir.mkdir(parents=True)
        dataset.tarball.write_bytes(b"x")

        dataset.cleanup()

        assert not dataset.download_dir.exists()
