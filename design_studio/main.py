import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from design_studio.core.config import CORS_ORIGINS, DATABASE_URL, ENV
from design_studio.core.database import Base, engine
from design_studio.core.logging_setup import configure_logging
from design_studio.core.startup_checks import (
    ensure_migrations_applied,
    validate_auth_environment,
    validate_database_environment,
)
from design_studio.middleware.observability import ObservabilityMiddleware
import design_studio.models  # registers every table on Base.metadata before create_all

from design_studio.routers.admin_emails import router as admin_emails_router
from design_studio.routers.design_packages import router as design_packages_router
from design_studio.routers.designer_assignments import router as designer_assignments_router
from design_studio.routers.email_templates import router as email_templates_router
from design_studio.routers.jobs import router as jobs_router
from design_studio.routers.payments import router as payments_router
from design_studio.routers.pricing import router as pricing_router
from design_studio.routers.users import router as users_router
from design_studio.routers.vouchers import router as vouchers_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Design Studio Portal API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


def _startup_tasks() -> None:
    try:
        logger.info("%s env=%s", STARTUP_PREFIX, ENV)
        validate_database_environment()
        validate_auth_environment()
        # Local sqlite gets its schema directly; everything else goes through alembic.
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


app.include_router(jobs_router)
app.include_router(designer_assignments_router)
app.include_router(vouchers_router)
app.include_router(payments_router)
app.include_router(pricing_router)
app.include_router(design_packages_router)
app.include_router(email_templates_router)
app.include_router(admin_emails_router)
app.include_router(users_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
