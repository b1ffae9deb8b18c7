from __future__ import annotations

import os
from typing import Optional

import httpx

from payrecon.logging_config import get_logger

logger = get_logger(__name__)


def safe_http_post(url: Optional[str], record: dict) -> None:
    """Attempt to POST a JSON record to the ops sink; never raise.

    Supports an optional bearer token via OPS_SINK_TOKEN.
    """
    if not url:
        logger.warning("ops_sink_disabled", reason="missing_url")
        return
    headers = {"Content-Type": "application/json"}
    token = os.getenv("OPS_SINK_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        with httpx.Client(timeout=3.0) as client:
            r = client.post(url, json=record, headers=headers)
        if r.status_code >= 400:
            logger.warning("ops_sink_post_rejected", status_code=r.status_code)
    except httpx.HTTPError as e:
        logger.warning("ops_sink_post_failed", error=str(e))
