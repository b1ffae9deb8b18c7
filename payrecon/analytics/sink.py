from __future__ import annotations

import time
from typing import Any, Dict

from payrecon.config import settings
from payrecon.config.flags import flag
from payrecon.logging_config import get_logger
from .util import safe_http_post

logger = get_logger(__name__)


def emit(event_type: str, payload: Dict[str, Any]) -> None:
    """Emit an operational record: always as a structured log line, and to
    the HTTP ops sink when FEATURE_OPS_SINK is enabled.

    Never raises.
    """
    record = {
        "ts": int(time.time()),
        "event_type": event_type,
        "payload": payload,
    }
    logger.warning("ops_event", ops_event=event_type, **payload)
    if not flag("FEATURE_OPS_SINK"):
        return
    safe_http_post(settings.OPS_SINK_URL, record)
