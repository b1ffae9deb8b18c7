from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from payrecon.config import settings

# Base for ALL models
Base = declarative_base()


def build_engine(url: Optional[str] = None) -> Engine:
    """
    Create an engine for the given URL (defaults to DATABASE_URL).

    SQLite connections are shared across the request thread pool, so
    same-thread checking is disabled and writers wait on the file lock
    instead of failing immediately.
    """
    url = (url or settings.DATABASE_URL).strip()
    if url.startswith("sqlite"):
        return create_engine(
            url,
            future=True,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    # Ensure sslmode=require if missing
    if url.startswith("postgresql") and "sslmode=" not in url and settings.ENVIRONMENT == "production":
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}sslmode=require"

    return create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


engine = build_engine()
SessionLocal = build_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create tables for local development and tests (production uses Alembic)."""
    from payrecon import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)

