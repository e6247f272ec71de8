"""
Tests for logger setup
"""

import logging
from datetime import date

from engagement.utils.logger import PACKAGE_LOGGER, log_file_path, setup_logger


def test_log_file_is_named_by_day(tmp_path):
    assert log_file_path(tmp_path, date(2025, 6, 2)) == tmp_path / 'engagement_20250602.log'


def test_module_loggers_propagate_to_package_logger():
    logger = setup_logger('engagement.services.daily_tasks')
    assert logger.name == 'engagement.services.daily_tasks'
    assert logger.handlers == []
    assert logger.propagate is True
    assert logging.getLogger(PACKAGE_LOGGER).handlers


def test_foreign_names_are_nested_under_package():
    assert setup_logger('housekeeping').name == 'engagement.housekeeping'
    assert setup_logger(PACKAGE_LOGGER).name == PACKAGE_LOGGER


def test_repeated_setup_does_not_duplicate_handlers():
    setup_logger('engagement.main')
    root = logging.getLogger(PACKAGE_LOGGER)
    before = list(root.handlers)
    setup_logger('engagement.database.database')
    setup_logger('engagement.main')
    assert root.handlers == before


def test_first_setup_writes_daily_file_in_log_dir(tmp_path, monkeypatch):
    root = logging.getLogger(PACKAGE_LOGGER)
    monkeypatch.setattr(root, 'handlers', [])
    log_dir = tmp_path / 'logs'

    logger = setup_logger('engagement.tests', log_dir=log_dir)
    logger.info("Housekeeping complete")

    try:
        kinds = sorted(type(handler).__name__ for handler in root.handlers)
        assert kinds == ['FileHandler', 'StreamHandler']
        for handler in root.handlers:
            handler.flush()
        content = log_file_path(log_dir).read_text(encoding='utf-8')
        assert 'engagement.tests - INFO - Housekeeping complete' in content
    finally:
        for handler in root.handlers:
            handler.close()
