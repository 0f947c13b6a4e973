"""
FastAPI dependencies shared by the route modules.

The orchestrator is built once in the app lifespan and stored on
`app.state`; routes receive it through `Depends(get_orchestrator)` so tests
can swap it with `app.dependency_overrides`.
"""

from fastapi import HTTPException, Request

from songcheck.detection.orchestrator import DetectionOrchestrator


def get_orchestrator(request: Request) -> DetectionOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Detection service is starting up")
    return orchestrator
