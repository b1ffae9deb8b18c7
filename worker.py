import time

from dotenv import load_dotenv

load_dotenv()

from payrecon.config import settings  # noqa: E402
from payrecon.db import SessionLocal, init_db  # noqa: E402
from payrecon.errors import StoreError  # noqa: E402
from payrecon.logging_config import get_logger  # noqa: E402
from payrecon.psp import PSPDispatcher, PSPProvider  # noqa: E402
from payrecon.services.order_store import OrderStore  # noqa: E402
from payrecon.services.reconciliation import ReconciliationService  # noqa: E402

logger = get_logger(__name__)


def build_services(dispatcher: PSPDispatcher, store: OrderStore):
    """One reconciliation service per configured gateway."""
    services = []
    for provider in PSPProvider:
        try:
            adapter = dispatcher.get_adapter(provider.value)
        except ValueError as e:
            logger.info("recon_provider_skipped", provider=provider.value, reason=str(e))
            continue
        services.append(
            ReconciliationService(
                adapter,
                store,
                session_factory=SessionLocal,
                dropped_is_failure=settings.DROPPED_IS_FAILURE,
            )
        )
    return services


def run_once(services) -> None:
    for service in services:
        try:
            counts = service.reconcile_pending(
                older_than_minutes=settings.RECON_OLDER_THAN_MINUTES,
                limit=settings.RECON_BATCH_LIMIT,
            )
        except StoreError as e:
            logger.error("recon_cycle_failed", provider=service.adapter.provider.value, reason=e.kind.value)
            continue
        logger.info("recon_cycle_completed", provider=service.adapter.provider.value, **counts)


def start_worker():
    logger.info("recon_worker_starting", interval_seconds=settings.RECON_INTERVAL_SECONDS)
    if settings.ENVIRONMENT != "production":
        init_db()

    services = build_services(PSPDispatcher(settings), OrderStore(SessionLocal))
    if not services:
        logger.error("recon_worker_no_providers")
        return

    while True:
        try:
            run_once(services)
            time.sleep(settings.RECON_INTERVAL_SECONDS)
        except KeyboardInterrupt:
            logger.info("recon_worker_stopping")
            break


if __name__ == "__main__":
    start_worker()
