# payrecon/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# ---------------------------------------------
# LOAD ENVIRONMENT VARIABLES
# ---------------------------------------------
load_dotenv()

from payrecon.config import settings  # noqa: E402
from payrecon.db import init_db  # noqa: E402
from payrecon.logging_config import get_logger  # noqa: E402
from payrecon.middleware import request_id_middleware  # noqa: E402

# ---------------------------------------------
# IMPORT ROUTERS
# ---------------------------------------------
from payrecon.routers import (  # noqa: E402
    health,
    payments,
    webhooks,
    orders,
    recon,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Production schemas are managed by Alembic
    if settings.ENVIRONMENT != "production":
        init_db()
    logger.info("app_started", provider=settings.GATEWAY_PROVIDER)
    yield


# ---------------------------------------------
# APP INIT
# ---------------------------------------------
app = FastAPI(
    title="payrecon API",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------
# MIDDLEWARE
# ---------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

# ---------------------------------------------
# ROUTERS
# ---------------------------------------------

# Health
app.include_router(health.router, prefix="/health", tags=["Health"])

# Payments
app.include_router(payments.router, prefix="/v1/payments", tags=["Payments"])

# Webhooks
app.include_router(webhooks.router, prefix="/v1/webhooks", tags=["Webhooks"])

# Orders
app.include_router(orders.router, prefix="/v1/orders", tags=["Orders"])

# Reconciliation
app.include_router(recon.router, prefix="/v1/recon", tags=["Reconciliation"])


# ---------------------------------------------
# ROOT ENDPOINT
# ---------------------------------------------
@app.get("/")
def root():
    return {"message": "payrecon is running"}
