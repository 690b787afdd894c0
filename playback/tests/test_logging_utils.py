"""
Tests for structured logging helpers
"""

import json
import logging

from podcast_alarm.logging_utils import JSONFormatter, log_phase_end


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_phase_end_carries_structured_fields():
    logger = logging.getLogger("podcast_alarm.test.phase")
    logger.setLevel(logging.INFO)
    handler = _Capture()
    logger.addHandler(handler)
    try:
        log_phase_end(logger, "playlist", 120, True, episodes=2)
    finally:
        logger.removeHandler(handler)

    payload = json.loads(JSONFormatter().format(handler.records[0]))
    assert payload["phase"] == "playlist"
    assert payload["duration_ms"] == 120
    assert payload["episodes"] == 2
    assert payload["level"] == "INFO"
