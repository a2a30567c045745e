from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.config import ENGINE_CREDENTIAL_NAMES, SUPPORTED_ENGINES


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A database URL must be configured.
    - SOV_ENGINES may only name supported engines.
    - Missing engine credentials are allowed (those engines answer from the
      mock) but are logged; the check is skipped when ENGINE_MOCK_MODE is on.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = os.getenv("DATABASE_URL", "").strip()
    cloud_database_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    local_database_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if not database_url and not cloud_database_url and not local_database_url:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL "
            "or LOCAL_DATABASE_URL."
        )

    # --- Engines --------------------------------------------------------
    raw_engines = os.getenv("SOV_ENGINES", "").strip()
    if raw_engines:
        requested = [item.strip().lower() for item in raw_engines.split(",") if item.strip()]
        unknown = sorted(set(requested) - set(SUPPORTED_ENGINES))
        if unknown:
            errors.append(
                f"SOV_ENGINES contains unsupported engines {unknown}. "
                f"Allowed values: {list(SUPPORTED_ENGINES)}."
            )

    mock_mode = os.getenv("ENGINE_MOCK_MODE", "").strip().lower() in {"1", "true", "yes", "on"}
    if not mock_mode:
        missing = [
            name for name in ENGINE_CREDENTIAL_NAMES.values() if not os.getenv(name, "").strip()
        ]
        if missing:
            logging.getLogger(__name__).warning(
                "Engine credentials not set, those engines will return mock results: %s",
                ", ".join(missing),
            )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.

    Must run before _validate_env(), which logs missing credentials.
    """

    from db.config import load_env_files

    load_env_files()
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table the visibility models define must exist in the database.

    Does NOT auto-migrate; schema changes are applied outside this service.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch: %d table(s) absent from the database: %s",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))})."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema on boot."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()
    _validate_env()

    application = FastAPI(
        title="Visibility Pipeline API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import scores_router, visibility_router

    application.include_router(visibility_router)
    application.include_router(scores_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
