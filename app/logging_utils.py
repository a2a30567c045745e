"""
app/logging_utils.py

Structured logging for the evaluation pipeline.

Every line is a compact JSON object keyed by ``event``. Failure lines also
carry a ``code`` from app.failure_codes, so logs and PairError records
share one vocabulary. Fields whose value is None are left out.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from app.failure_codes import KNOWN_FAILURES

# Provider errors can echo whole response bodies.
MAX_ERROR_CHARS = 500


def event_payload(event: str, **fields: Any) -> dict[str, Any]:
    payload = {key: value for key, value in fields.items() if value is not None}
    payload["event"] = event
    return payload


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    logger.log(level, json.dumps(event_payload(event, **fields), default=str, sort_keys=True))


def log_failure(
    logger: logging.Logger,
    level: int,
    event: str,
    exc: BaseException,
    *,
    code: str,
    **fields: Any,
) -> None:
    """
    Emit a failure line with ``code``, ``error`` and ``error_type`` filled
    from the exception.

    ``code`` must be one of the pipeline failure codes; the error message
    is cut to MAX_ERROR_CHARS.
    """

    if code not in KNOWN_FAILURES:
        raise ValueError(f"Unknown failure code: {code}")
    message = str(exc)
    if len(message) > MAX_ERROR_CHARS:
        message = message[:MAX_ERROR_CHARS] + "..."
    log_event(
        logger,
        level,
        event,
        code=code,
        error=message,
        error_type=type(exc).__name__,
        **fields,
    )


def tenant_fields(tenant: Any) -> dict[str, str]:
    """Log fields that scope a line to one location."""
    return {"org_id": tenant.org_id, "location_id": tenant.location_id}
