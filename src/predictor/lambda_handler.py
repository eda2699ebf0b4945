"""Serverless entry-point – API Gateway proxy events in, proxy responses out.

The model bundle is loaded on the first invocation of a fresh execution
environment and reused by every later invocation in it.  A failure while
loading propagates and fails the environment.
"""

import logging

from src.predictor.config import get_settings
from src.predictor.services.model_service import get_bundle
from src.predictor.services.prediction_service import handle, wrap

logger = logging.getLogger(__name__)


def _request_method(event: dict) -> str:
    """Read the HTTP method from a REST (v1) or HTTP API (v2) event."""
    method = event.get("httpMethod")
    if method:
        return method
    return event.get("requestContext", {}).get("http", {}).get("method", "")


def handler(event: dict, context: object = None) -> dict:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    bundle = get_bundle(settings)
    outcome = handle(
        _request_method(event),
        event.get("queryStringParameters"),
        bundle,
        settings,
    )
    logger.info("Request outcome: %s", outcome.kind.value)
    return wrap(outcome, legacy=settings.legacy_empty_responses).to_lambda()
