from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fieldseal.config import get_settings
from fieldseal.db import create_db_and_tables
from fieldseal.models.schema import build_schema
from fieldseal.routers import health
from fieldseal.services.policy import FIELD_POLICIES, validate_policy

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A missing or malformed key raises here and the app never starts.
    settings = get_settings()
    key = settings.key
    validate_policy(FIELD_POLICIES)

    schema = build_schema(key)
    create_db_and_tables(schema)

    app.state.encryption_key = key
    app.state.schema = schema
    logger.info("Field encryption enabled for %d column(s)", len(FIELD_POLICIES))

    yield

    # Drop references to the key on shutdown.
    app.state.encryption_key = None
    app.state.schema = None


app = FastAPI(
    title="fieldseal",
    description="Queryable field-level encryption at rest",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
