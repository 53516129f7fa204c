import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from chatdesk.config import Settings, get_settings
from chatdesk.database import get_db
from chatdesk.dependencies import get_dispatcher
from chatdesk.exceptions import NotRecognized
from chatdesk.logging_config import get_logger
from chatdesk.services.dispatcher import WebhookDispatcher

logger = get_logger("webhook")

router = APIRouter(prefix="/api/webhook", tags=["webhook"])

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_RECEIVED = "EVENT_RECEIVED"


def verify_signature(raw_body: bytes, header_value: Optional[str], app_secret: str) -> bool:
    """Check the provider's ``sha256=<hex>`` HMAC of the raw request body."""
    if not header_value or not header_value.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("utf-8"), header_value.split("=", 1)[1].encode("utf-8"))


@router.get("", response_class=PlainTextResponse)
def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    """Subscription handshake: echo the challenge when the token matches."""
    token_ok = bool(settings.verify_token) and verify_token is not None and hmac.compare_digest(
        verify_token.encode("utf-8"), settings.verify_token.encode("utf-8")
    )
    if mode == "subscribe" and token_ok:
        logger.info("Webhook verified successfully")
        return PlainTextResponse(challenge or "", status_code=200)

    logger.warning(f"Webhook verification failed: mode={mode}")
    return PlainTextResponse("Verification failed", status_code=403)


@router.post("", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    raw_body = await request.body()

    if settings.whatsapp_app_secret and not verify_signature(
        raw_body, request.headers.get(SIGNATURE_HEADER), settings.whatsapp_app_secret
    ):
        logger.warning("Rejected webhook with bad signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    logger.debug(f"Webhook payload: {body}")

    outcome = await run_in_threadpool(dispatcher.handle_event, db, body)
    if not outcome.accepted:
        raise NotRecognized("Unsupported webhook object")

    logger.info(
        "Webhook processed",
        extra={
            "context": {
                "messages": len(outcome.messages),
                "statuses": outcome.statuses_seen,
                "failed": len(outcome.failures),
            }
        },
    )
    return PlainTextResponse(EVENT_RECEIVED, status_code=200)
