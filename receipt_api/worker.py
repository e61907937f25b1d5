"""Dramatiq worker configuration.

This module initialises logging and Sentry and imports all tasks so
they are registered when the worker starts.

Run with:
    dramatiq receipt_api.worker
"""

import logging

from receipt_api.core.config import settings
from receipt_api.core.observability import init_sentry

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("receipt_api.worker")

if init_sentry("worker"):
    logger.info("Sentry SDK initialized for worker")

# Import tasks to register them with the broker
from receipt_api.core.tasks import broker, process_receipt_file  # noqa: E402,F401

logger.info("Tasks registered: %s", ", ".join(sorted(broker.get_declared_actors())))
