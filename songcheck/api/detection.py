"""
Detection routes.

POST   /detect                          multipart 'file' (+ optional 'providers')
GET    /detect/{request_id}             live aggregate view
DELETE /detect/{request_id}             abandon: stop polling, drop records
GET    /results/{provider_id}/{job_id}  one provider's canonical result
GET    /providers                       configured providers
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from songcheck.core.dependencies import get_orchestrator
from songcheck.core.errors import JobNotFoundError, NoProvidersConfiguredError, ProviderSelectionError
from songcheck.detection.aggregator import to_provider_result
from songcheck.detection.orchestrator import DetectionOrchestrator
from songcheck.schemas.detection import DetectionResponse, ProviderInfo, ProviderResult
from songcheck.services.detection_service import log_memory, parse_provider_selection, read_upload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Detection"])


@router.post("/detect", response_model=DetectionResponse)
async def detect(
    file: UploadFile = File(...),
    providers: Optional[str] = Form(None),
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
):
    """
    Submit an audio file to the selected providers.

    Synchronous providers are already FINISHED in the response; polling
    providers are ENQUEUED and progress in the background. Re-read
    GET /detect/{request_id} for updates.
    """
    try:
        selected = orchestrator.resolve_providers(parse_provider_selection(providers))
    except NoProvidersConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ProviderSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    request = await read_upload(file)
    log_memory(f"Pre-Submit: {request.filename}")

    tracker = await orchestrator.submit(request, selected)

    log_memory(f"Post-Submit: {request.filename}")
    response = orchestrator.aggregate(tracker.request_id)
    states = ", ".join(f"{p}={r.state}" for p, r in response.results.items())
    logger.info(f"[ROUTE] Request {tracker.request_id} submitted: {states} -> {response.conclusion}")
    return response


@router.get("/detect/{request_id}", response_model=DetectionResponse)
async def get_detection(request_id: str, orchestrator: DetectionOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.aggregate(request_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Request not found")


@router.delete("/detect/{request_id}")
async def abandon_detection(request_id: str, orchestrator: DetectionOrchestrator = Depends(get_orchestrator)):
    try:
        orchestrator.abandon(request_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Request not found")
    return {"status": "abandoned", "request_id": request_id}


@router.get("/results/{provider_id}/{job_id}", response_model=ProviderResult)
async def get_result(
    provider_id: str,
    job_id: str,
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
):
    try:
        job = orchestrator.get_job(provider_id, job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Result not found")
    return to_provider_result(job)


@router.get("/providers", response_model=List[ProviderInfo])
async def list_providers(orchestrator: DetectionOrchestrator = Depends(get_orchestrator)):
    return [
        ProviderInfo(provider=a.provider_id, mode=a.mode, oauth=a.oauth)
        for a in orchestrator.configured_providers()
    ]
