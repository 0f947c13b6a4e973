"""
Webhook routes: Cyanite analysis callbacks.

Cyanite signs the raw body with HMAC-SHA512 (hex) in the `Signature` header.
A verified "finished"/"failed" event wakes the poll task of the matching
library track so its result is fetched right away instead of at the next
interval. The poll task stays the only writer of job state.
"""

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from songcheck.config import settings
from songcheck.core.dependencies import get_orchestrator
from songcheck.detection.orchestrator import DetectionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])

TERMINAL_EVENT_STATUSES = {"finished", "failed"}


@router.post("/webhooks/cyanite")
async def cyanite_webhook(
    request: Request,
    signature: str = Header(None, alias="Signature"),
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
):
    secret = settings.cyanite_webhook_secret
    if not secret:
        return {"status": "ignored", "reason": "No secret set"}

    payload_bytes = await request.body()
    expected_signature = hmac.new(secret.encode(), payload_bytes, hashlib.sha512).hexdigest()

    if not signature or not hmac.compare_digest(signature, expected_signature):
        logger.warning("[WEBHOOK] Cyanite signature mismatch, rejecting request.")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(payload_bytes)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    resource = payload.get("resource") or {}
    event = payload.get("event") or {}
    track_id = resource.get("id")
    status = str(event.get("status", "")).lower()

    logger.info(f"[WEBHOOK] Cyanite {event.get('type')} event for track {track_id}: {status}")

    if not track_id or status not in TERMINAL_EVENT_STATUSES:
        return {"status": "acknowledged"}

    nudged = orchestrator.nudge("cyanite", str(track_id))
    if not nudged:
        logger.info(f"[WEBHOOK] No active poll for Cyanite track {track_id}")
    return {"status": "ok", "nudged": nudged}
