"""
spudverse.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn spudverse.api.main:app --reload --port 8000

or ``python -m spudverse.api``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from spudverse.api.auth import router as auth_router  # noqa: E402
from spudverse.api.deps import get_engine  # noqa: E402
from spudverse.api.routes.game import router as game_router  # noqa: E402
from spudverse.api.routes.missions import router as missions_router  # noqa: E402
from spudverse.api.routes.shop import router as shop_router  # noqa: E402
from spudverse.database.engine import init_db, run_db  # noqa: E402
from spudverse.errors import InsufficientResource, RateLimited, SpudError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Origins allowed to call the API: ``CORS_ALLOW_ORIGINS`` (comma list),
    else the single Mini App host in ``FRONTEND_URL``, else none."""
    configured = (
        os.getenv("CORS_ALLOW_ORIGINS", "").strip() or os.getenv("FRONTEND_URL", "").strip()
    )
    return [o.strip().rstrip("/") for o in configured.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the ledger and make sure the catalogs exist before serving."""
    engine = get_engine()
    await run_db(init_db, engine)
    logger.info("SpudVerse API serving (ledger %s)", engine.url.database)
    yield
    logger.info("SpudVerse API shutting down")


app = FastAPI(
    title="SpudVerse Economy API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SpudError)
async def spud_error_handler(request: Request, exc: SpudError) -> JSONResponse:
    """Render every domain error as ``{"error": code, "message": ..., **details}``."""
    if isinstance(exc, InsufficientResource):
        logger.debug("%s %s → %s", request.method, request.url.path, exc.message)
    elif exc.status_code >= 500:
        logger.error("%s %s → %s: %s", request.method, request.url.path, exc.code, exc.message)

    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.details.get("retry_after", 60))}
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


app.include_router(auth_router, prefix="/api")
app.include_router(game_router, prefix="/api")
app.include_router(missions_router, prefix="/api")
app.include_router(shop_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
