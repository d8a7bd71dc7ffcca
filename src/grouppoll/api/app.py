"""
FastAPI application for group scheduling polls.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from grouppoll.api.auth import router as auth_router
from grouppoll.api.polls import router as polls_router
from grouppoll.api.public import router as public_router
from grouppoll.common import settings
from grouppoll.common.db.connection import get_engine
from grouppoll.common.errors import InvalidState, PollError

logger = logging.getLogger(__name__)


app = FastAPI(title="Group Poll API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.SERVER_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PollError)
async def poll_error_handler(request: Request, exc: PollError) -> JSONResponse:
    content: dict = {"detail": exc.message}
    if isinstance(exc, InvalidState) and exc.status:
        content["poll_status"] = exc.status
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(content, status_code=exc.status_code)


@app.get("/health")
def health_check():
    """Health check endpoint that verifies the database is reachable."""
    checks = {}
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)[:100]}"

    healthy = checks["database"] == "healthy"
    checks["status"] = "healthy" if healthy else "degraded"
    return JSONResponse(checks, status_code=200 if healthy else 503)


app.include_router(auth_router)
app.include_router(polls_router)
app.include_router(public_router)


def main(reload: bool = False):
    """Run the FastAPI server, optionally with auto-reloading."""
    import uvicorn

    uvicorn.run(
        "grouppoll.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=reload,
        log_level="debug" if reload else "info",
    )


if __name__ == "__main__":
    main(os.getenv("RELOAD", "false") == "true")
