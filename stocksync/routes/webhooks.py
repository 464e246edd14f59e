import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError

from stocksync.core.config import get_settings
from stocksync.core.crypto import decrypt
from stocksync.core.exceptions import CredentialError
from stocksync.core.security import (
    canonical_webhook_body,
    is_timestamp_fresh,
    parse_webhook_timestamp,
    verify_signature,
)
from stocksync.core.utils import utcnow
from stocksync.dependencies import get_stock_sync_service
from stocksync.schemas.webhook import WebhookPayload, WebhookResponse
from stocksync.services.stock_sync_service import StockSyncService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "X-WCSC-Signature"


@router.post("/webhook/stock-sync", response_model=WebhookResponse)
async def stock_sync_webhook(
    request: Request,
    service: StockSyncService = Depends(get_stock_sync_service),
):
    """
    Stock change notifications from a store's stock-connector plugin.

    Malformed or stale envelopes get 400 and bad signatures 401, before
    anything is written. Everything else gets 200 with the outcome in the body
    so plugins do not retry business failures.
    """
    settings = get_settings()
    raw_body = await request.body()

    try:
        envelope = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(envelope, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    try:
        payload = WebhookPayload.model_validate(envelope)
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook payload: {e.errors()[0]['msg']}")

    try:
        sent_at = parse_webhook_timestamp(payload.timestamp)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook timestamp")

    if not is_timestamp_fresh(sent_at, utcnow(), settings.WEBHOOK_TOLERANCE_SECONDS):
        logger.warning(f"Rejected stale webhook from {payload.store_url} (timestamp {payload.timestamp})")
        raise HTTPException(status_code=400, detail="Webhook timestamp outside the allowed window")

    store = await service.find_store_by_url(payload.store_url)

    secret = None
    if store is not None and store.webhook_secret:
        try:
            secret = decrypt(store.webhook_secret)
        except CredentialError as e:
            logger.error(f"Cannot decrypt webhook secret for store {store.id}: {str(e)}")
    secret = secret or settings.WEBHOOK_SECRET or None

    signature = payload.signature or request.headers.get(SIGNATURE_HEADER)
    # The plugin signs the envelope without its signature; header-only senders sign the raw body
    signed = verify_signature(canonical_webhook_body(envelope), signature, secret) or \
        verify_signature(raw_body, signature, secret)
    if not signed:
        logger.warning(f"Rejected webhook with invalid signature from {payload.store_url}")
        raise HTTPException(status_code=401, detail="Invalid signature")

    outcome = await service.handle_stock_webhook(payload, store=store)
    return WebhookResponse(success=outcome.processed, synced=outcome.synced, message=outcome.message)
