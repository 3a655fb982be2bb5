"""Unit tests for logger configuration."""

import json
import logging

from flowlog_athena.config import config
from flowlog_athena.utils.logger import RUN_ID, RunContextFilter, get_logger


class TestGetLogger:
    """Test logger setup."""

    def test_handlers_added_once(self):
        logger = get_logger("flowlog_athena.tests.once")
        assert get_logger("flowlog_athena.tests.once") is logger
        assert len(logger.handlers) == 1
        assert not logger.propagate

    def test_run_context_filter(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)

        assert RunContextFilter().filter(record)
        assert record.run_id == RUN_ID
        assert record.environment == config.environment

    def test_prod_lines_are_json_with_partition_fields(self, monkeypatch, capsys):
        monkeypatch.setattr(config, "environment", "prod")
        logger = get_logger("flowlog_athena.tests.prod")

        logger.info("Partition added", extra={'table': 'flow_logs', 'partition': '2024-01-15'})

        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert line['message'] == "Partition added"
        assert line['run_id'] == RUN_ID
        assert line['environment'] == "prod"
        assert line['table'] == "flow_logs"
        assert line['partition'] == "2024-01-15"
