"""Webhook routes: inbound email."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status

from briefdeck.config import get_settings
from briefdeck.dependencies import get_job_queue
from briefdeck.queue import JobQueue
from briefdeck.schemas.email import InboundEmail

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/inbound-email", status_code=status.HTTP_202_ACCEPTED)
async def inbound_email(
    email: InboundEmail,
    inbound_secret: str = Header(alias="X-Inbound-Secret"),
    queue: JobQueue = Depends(get_job_queue),
):
    settings = get_settings()
    if not hmac.compare_digest(inbound_secret.encode(), settings.inbound_email_secret.encode()):
        raise HTTPException(status_code=401, detail="Invalid secret")

    logger.info("Inbound email %s for %s", email.message_id, email.recipient)
    await queue.enqueue_email(email.model_dump(mode="json", by_alias=True))
    return {"status": "queued"}
