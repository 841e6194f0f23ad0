from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict

from .torn import TornApiError


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Root logging setup for a Lambda entry point; LOG_LEVEL overrides INFO."""
    level_name = (os.environ.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Lambda pre-installs a handler, which makes basicConfig a no-op.
    logging.getLogger().setLevel(level)


def json_response(status: int, body: Any) -> Dict[str, Any]:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def respond(run: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run a job once and shape the outcome as an HTTP-style response.

    Summary -> 200; a Torn API error that aborted the whole job -> 400;
    anything else -> 500 with the message.
    """
    configure_logging()
    try:
        summary = run()
    except TornApiError as exc:
        logger.error("Torn API error: %s", exc)
        return json_response(400, {"error": str(exc), "code": exc.code})
    except Exception as exc:
        logger.exception("Job failed: %s", exc)
        return json_response(500, {"error": str(exc)})
    return json_response(200, summary)


__all__ = ["configure_logging", "json_response", "respond"]
