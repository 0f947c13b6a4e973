"""
SongCheck API: is this track AI-generated or human-made?

Wires the routers, the shared HTTP session, the optional Redis cache and the
detection orchestrator together. Run with:

    uvicorn songcheck.main:app
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from starlette.exceptions import HTTPException as StarletteHTTPException  # noqa: E402

from songcheck.api import detection, system, webhooks  # noqa: E402
from songcheck.config import settings  # noqa: E402
from songcheck.detection.orchestrator import DetectionOrchestrator  # noqa: E402
from songcheck.integrations import http_client, redis_client  # noqa: E402
from songcheck.integrations.registry import build_adapters  # noqa: E402

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


async def periodic_cleanup(orchestrator: DetectionOrchestrator) -> None:
    """Drop expired request records every `cleanup_interval_sec` seconds."""
    while True:
        try:
            await asyncio.sleep(settings.cleanup_interval_sec)
            orchestrator.cleanup_expired()
            logger.debug("[CLEANUP] Periodic cleanup completed")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"[CLEANUP] Error in periodic cleanup: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await http_client.initialize()
    redis_client.initialize()

    orchestrator = DetectionOrchestrator(build_adapters())
    app.state.orchestrator = orchestrator
    configured = [a.provider_id for a in orchestrator.configured_providers()]
    logger.info(f"[STARTUP] Configured providers: {', '.join(configured) or 'none'}")

    cleanup_task = None
    if not os.getenv("TESTING"):
        cleanup_task = asyncio.create_task(periodic_cleanup(orchestrator))
        logger.info("[STARTUP] Background cleanup task started")

    yield

    if cleanup_task:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
    await orchestrator.shutdown()
    await http_client.close()
    logger.info("[SHUTDOWN] Detection service stopped")


app = FastAPI(title="SongCheck AI Music Detection API", lifespan=lifespan)


# HTTP errors must carry CORS headers too, or the browser hides the JSON body
# behind a generic network error.
@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = dict(getattr(exc, "headers", None) or {})
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "*"
    headers["Access-Control-Allow-Headers"] = "*"

    logger.info(f"[ERROR HANDLER] {request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(detection.router)
app.include_router(webhooks.router)
