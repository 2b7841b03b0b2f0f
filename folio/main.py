"""
Folio HTTP application.

Run with: uvicorn folio.main:app --reload
"""
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from folio.api import ai, billing, exports, health, metrics, projects, templates, uploads
from folio.api.deps import get_object_store, get_template_service
from folio.core.config import settings, validate_config
from folio.core.database import create_all_tables
from folio.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from folio.core.logging import configure_logging
from folio.core.middleware.request_id import RequestIdMiddleware
from folio.core.validation import validate_env
from folio.features.storage.object_store import ensure_buckets

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("folio")
    logger.info(f"Starting {settings.PRODUCT_NAME} backend...")
    create_all_tables()
    seeded = get_template_service().seed_defaults()
    if seeded:
        logger.info(f"Seeded {seeded} default templates")
    ensure_buckets(get_object_store())
    try:
        yield
    finally:
        logger.info(f"Stopping {settings.PRODUCT_NAME} backend...")


app = FastAPI(title=f"{settings.PRODUCT_NAME} - Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects.router)
app.include_router(exports.router)
app.include_router(templates.router)
app.include_router(billing.router)
app.include_router(ai.router)
app.include_router(uploads.router)
app.include_router(health.router)
app.include_router(metrics.router)
