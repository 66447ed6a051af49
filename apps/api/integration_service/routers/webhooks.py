import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from integration_service.core import ValidationError, get_settings, log_context, verify_signature
from integration_service.dependencies import get_db, get_dispatcher
from integration_service.services.ledger import claim_webhook_delivery, get_webhook_delivery
from integration_service.services.pipeline import WebhookDispatcher, new_webhook_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "X-Gitea-Signature"
DELIVERY_HEADER = "X-Gitea-Delivery"
EVENT_HEADER = "X-Gitea-Event"


@router.post("/vc")
async def vc_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
    db: AsyncSession = Depends(get_db),
):
    """Signed VC host event. Signature is checked against the raw body before anything else."""
    raw = await request.body()
    verify_signature(get_settings().gitea_webhook_secret, raw, request.headers.get(SIGNATURE_HEADER))

    try:
        payload = json.loads(raw or b"{}")
    except ValueError as e:
        raise ValidationError([{"field": "body", "message": f"Invalid JSON payload: {e}"}], message="Invalid webhook payload")
    if not isinstance(payload, dict):
        raise ValidationError([{"field": "body", "message": "Webhook payload must be a JSON object"}], message="Invalid webhook payload")

    delivery_id = request.headers.get(DELIVERY_HEADER)
    webhook_id = new_webhook_id()
    with log_context({"webhook_id": webhook_id, "delivery_id": delivery_id}):
        claim = None
        if delivery_id:
            seen = await get_webhook_delivery(db, delivery_id)
            if seen is None:
                claim = await claim_webhook_delivery(
                    db,
                    delivery_id,
                    request.headers.get(EVENT_HEADER),
                    payload.get("action"),
                    (payload.get("pull_request") or {}).get("number"),
                )
            if claim is None:
                logger.info(
                    "Delivery %s already processed (%s); acknowledging",
                    delivery_id,
                    seen.outcome if seen is not None else "in progress",
                )
                return {
                    "success": True,
                    "message": "Webhook already processed",
                    "webhookId": webhook_id,
                    "action": payload.get("action"),
                    "duplicate": True,
                }

        outcome = await dispatcher.dispatch(payload, webhook_id)

        if claim is not None:
            claim.outcome = outcome.detail.get("outcome") or outcome.handled
            await db.flush()
    return {"success": True, "message": "Webhook processed successfully", **outcome.to_dict()}
