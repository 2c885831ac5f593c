"""Tests for structured pipeline event logging"""

import json
import logging

from config.settings import settings
from core.logging import EVENT_LOGGER_NAME, LOGGER_NAME, log_structured, logger


class TestStructuredLogging:
    """Test the JSON event lines"""

    def test_event_line_carries_service_fields(self, caplog):
        caplog.set_level(logging.INFO, logger=EVENT_LOGGER_NAME)

        log_structured("provider_fallback", {"family": "character", "failed_model": "instant-id"})

        records = [r for r in caplog.records if r.name == EVENT_LOGGER_NAME]
        assert len(records) == 1

        entry = json.loads(records[0].getMessage())
        assert entry["event_type"] == "provider_fallback"
        assert entry["service"] == LOGGER_NAME
        assert entry["environment"] == settings.ENVIRONMENT
        assert entry["family"] == "character"
        assert entry["timestamp"].endswith("Z")

    def test_non_json_values_are_stringified(self, caplog):
        caplog.set_level(logging.INFO, logger=EVENT_LOGGER_NAME)

        log_structured("generation_started", {"selection": object()})

        entry = json.loads(caplog.records[-1].getMessage())
        assert isinstance(entry["selection"], str)

    def test_service_logger_name(self):
        assert logger.name == LOGGER_NAME
