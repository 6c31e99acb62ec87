from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api import config
from apps.api.errors import install_error_handlers
from apps.api.routers import alerts, analysis, events, files, matches, persons
from py_missingwatch.layout import data_root, ensure_dirs

app = FastAPI(title="MissingWatch API", version="0.1.0")
install_error_handlers(app)
LOGGER = logging.getLogger(__name__)

origins = {config.UI_ORIGIN, "http://localhost:5173"}
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)
app.include_router(persons.router, tags=["persons"])
app.include_router(matches.router, tags=["matches"])
app.include_router(alerts.router, tags=["alerts"])
app.include_router(analysis.router, tags=["analysis"])
app.include_router(events.router, tags=["events"])
app.include_router(files.router, tags=["files"])


@app.on_event("startup")
def _prepare_data_root() -> None:
    ensure_dirs()
    LOGGER.info("MissingWatch data root: %s (storage=%s)", data_root().resolve(), config.STORAGE_BACKEND)


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}
