"""
System / health routes.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["System"])


@router.get("/health")
async def health(request: Request):
    orchestrator = getattr(request.app.state, "orchestrator", None)
    return {
        "status": "healthy",
        "providers": len(orchestrator.configured_providers()) if orchestrator else 0,
        "active_polls": orchestrator.scheduler.active if orchestrator else 0,
    }


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots():
    return "User-agent: *\nDisallow: /"
