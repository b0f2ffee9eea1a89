"""
FastAPI application entrypoint.

Run locally:  uvicorn clinical_forms.main:app --reload
"""

import logging

from fastapi import FastAPI

from clinical_forms.api.routes import router
from clinical_forms.config import settings
from clinical_forms.models.database import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(
    title="Clinical Form Engine API",
    description=(
        "Validates clinical form submissions against their template schema "
        "and turns them into coded observations."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
def on_startup():
    init_db()
