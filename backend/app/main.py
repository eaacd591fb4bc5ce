"""FastAPI application entrypoint.

The routers in `app.routers` are thin: they accept requests, delegate to
the services and map domain errors to HTTP statuses. This module wires
them together with CORS, request logging and the uploaded-file mount.

Areas:
- /auth, /band-levels
- /student/{reading,listening,writing,speaking}, progress, vocabulary,
  notifications
- /mock-tests, /ai-questions
- /admin content, students, band levels, dashboard, files, vocabulary
"""

import json
import logging
import os
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from .config import settings
from .database import create_db_and_tables
from .routers import (
    admin_content,
    admin_dashboard,
    admin_users,
    ai_questions,
    auth,
    mock_tests,
    practice,
    progress,
    vocabulary,
    writing,
)

app = FastAPI(title="IELTS Preparation API")
logger = logging.getLogger("app.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

# Wide-open CORS keeps local frontends working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()

# Uploaded audio and recordings are served from /storage/<relative path>.
settings.STORAGE_ROOT.mkdir(parents=True, exist_ok=True)
app.mount("/storage", StaticFiles(directory=settings.STORAGE_ROOT), name="storage")


def _request_log(request: Request, req_id: str, elapsed_ms: float, status_code=None) -> str:
    data = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": elapsed_ms,
        "client": request.client.host if request.client else "unknown",
    }
    if status_code is not None:
        data["status_code"] = status_code
    return json.dumps(data, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", _request_log(request, req_id, elapsed_ms))
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", _request_log(request, req_id, elapsed_ms, response.status_code))
    return response


app.include_router(auth.router)
app.include_router(practice.reading_router)
app.include_router(practice.listening_router)
app.include_router(writing.writing_router)
app.include_router(writing.speaking_router)
app.include_router(progress.router)
app.include_router(mock_tests.router)
app.include_router(ai_questions.router)
app.include_router(vocabulary.student_router)
app.include_router(vocabulary.notifications_router)
app.include_router(vocabulary.admin_router)
app.include_router(admin_content.router)
app.include_router(admin_users.router)
app.include_router(admin_dashboard.dashboard_router)
app.include_router(admin_dashboard.files_router)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
