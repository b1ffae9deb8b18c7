"""
Request tracing middleware.

Binds a request id (and, on webhook routes, the gateway name) to the
structlog context so every log line a request produces can be correlated,
including the ones written by the order store and gateway adapters.
"""
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from structlog.contextvars import bind_contextvars, clear_contextvars

from payrecon.logging_config import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128
WEBHOOK_PREFIX = "/v1/webhooks/"


def _incoming_request_id(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER)
    if supplied and len(supplied) <= MAX_REQUEST_ID_LENGTH and supplied.isprintable():
        return supplied
    return uuid.uuid4().hex


def _webhook_provider(path: str) -> Optional[str]:
    if not path.startswith(WEBHOOK_PREFIX):
        return None
    return path[len(WEBHOOK_PREFIX):].strip("/").split("/", 1)[0] or None


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    request_id = _incoming_request_id(request)
    path = request.url.path

    clear_contextvars()
    bind_contextvars(request_id=request_id, method=request.method, path=path)
    provider = _webhook_provider(path)
    if provider:
        bind_contextvars(provider=provider)

    request.state.request_id = request_id
    logger.info("request_started", client_host=request.client.host if request.client else None)
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as exc:
        logger.error(
            "request_failed",
            exc_info=exc,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        raise
    else:
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_contextvars()
