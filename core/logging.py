"""Logging for the consistency core: a service logger plus one JSON line per pipeline event"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any

from config.settings import settings

LOGGER_NAME = "lookbook.consistency"
EVENT_LOGGER_NAME = "lookbook.consistency.events"


def setup_logging() -> logging.Logger:
    """Configure the service logger; the environment is stamped on every line"""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=f'%(asctime)s - %(name)s [{settings.ENVIRONMENT}] - %(levelname)s - %(message)s'
    )
    return logging.getLogger(LOGGER_NAME)


logger = setup_logging()
event_logger = logging.getLogger(EVENT_LOGGER_NAME)


def log_structured(event_type: str, data: Dict[str, Any]) -> None:
    """
    Emit one generation-pipeline event as a JSON line

    Events go to their own child logger so they can be shipped or filtered
    apart from the human-readable log.

    Args:
        event_type: Pipeline event (e.g., "generation_started", "provider_fallback",
            "scoring_degraded", "regeneration_decision")
        data: Event fields; values that are not JSON types are stringified
    """
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "service": LOGGER_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "event_type": event_type,
        **data
    }
    event_logger.info(json.dumps(log_entry, ensure_ascii=False, default=str))
