"""Tests for settings and logging configuration."""
import json
import logging
import pytest
from dataclasses import replace

from eskimo_sync.config import EskimoSettings, TestingConfig
from eskimo_sync.logging_config import get_channel_logger
from eskimo_sync.services.error_handler import AuthError, ErrorCollector, ValidationError


class TestEskimoSettings:
    """Test settings construction and validation."""

    def test_from_config_adds_trailing_slash(self):
        class Cfg(TestingConfig):
            ESKIMO_API_DOMAIN = 'https://epos.example.com'

        settings = EskimoSettings.from_config(Cfg)

        assert settings.domain == 'https://epos.example.com/'
        assert settings.writeback_delay == 0
        assert settings.coupon_mode == 'sequential'

    def test_validate_lists_missing(self, settings):
        with pytest.raises(AuthError) as exc_info:
            replace(settings, domain='', username='').validate()
        assert exc_info.value.message == 'Missing Eskimo API settings: domain, username'

    def test_validate_complete(self, settings):
        settings.validate()


class TestChannelLogging:
    """Test per-channel JSON log files."""

    def test_channel_writes_json(self, tmp_path):
        logger = get_channel_logger('cron', str(tmp_path))
        logger.info("categories_new: started")
        for handler in logger.handlers:
            handler.flush()

        lines = (tmp_path / 'cron.log').read_text().strip().splitlines()
        record = json.loads(lines[-1])
        assert record['message'] == 'categories_new: started'
        assert record['level'] == 'INFO'
        assert record['logger'] == 'eskimo.cron'

    def test_channel_handler_added_once(self, tmp_path):
        first = get_channel_logger('cart', str(tmp_path))
        count = len(first.handlers)
        second = get_channel_logger('cart', str(tmp_path))

        assert first is second
        assert len(second.handlers) == count

    def test_unknown_channel(self, tmp_path):
        with pytest.raises(ValueError):
            get_channel_logger('audit', str(tmp_path))


class TestErrorCollector:
    """Test per-item skip collection."""

    def test_summary_by_code(self):
        errors = ErrorCollector('products_all')
        errors.skip('1|A|', 'Title not set')
        errors.add('2|B|', ValidationError('bad'))
        errors.skip('3|C|', 'SKU exists [X]')

        summary = errors.summary()

        assert summary['total_skipped'] == 3
        assert summary['by_code'] == {'RECONCILIATION_ERROR': 2, 'VALIDATION_ERROR': 1}
        assert errors.to_list()[0]['identifier'] == '1|A|'
        assert errors.to_list()[0]['category'] == 'business_rule'
