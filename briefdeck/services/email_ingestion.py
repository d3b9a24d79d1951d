"""Email ingestion listener: turns an inbound newsletter into items for its source."""

import logging
from email.utils import parseaddr

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import Settings, get_settings
from briefdeck.constants import MAX_ERROR_LENGTH, MAX_LINK_LENGTH, MAX_TITLE_LENGTH
from briefdeck.db import repository
from briefdeck.models import Item, ItemStatus, RawEmail, Source, SourceStatus
from briefdeck.queue import JobQueue
from briefdeck.schemas.email import InboundEmail
from briefdeck.services.blob_storage import BlobStorage, safe_key_part
from briefdeck.services.html_text import html_to_text
from briefdeck.services.scoring_service import Scorer
from briefdeck.utils import ensure_utc, now_utc, truncate

logger = logging.getLogger(__name__)


def extract_token(recipient: str | None, domain: str) -> str | None:
    """Local part of *recipient* when it is addressed to our inbound domain."""
    if not recipient:
        return None
    _, address = parseaddr(recipient)
    local, sep, host = address.strip().rpartition("@")
    if not sep or not local or host.lower() != domain.lower():
        return None
    return local.lower()


async def store_raw_email(db: AsyncSession, storage: BlobStorage, source_id: int, email: InboundEmail) -> bool:
    """Keep the original email for audit. Returns False when already stored."""
    if await repository.raw_email_exists(db, source_id, email.message_id):
        logger.debug("Raw email %s already stored for source %s", email.message_id, source_id)
        return False

    key = f"raw-emails/{source_id}/{safe_key_part(email.message_id)}.json"
    await storage.put(key, email.model_dump_json(by_alias=True).encode("utf-8"))
    db.add(
        RawEmail(
            source_id=source_id,
            message_id=email.message_id,
            from_address=email.from_address,
            subject=email.subject,
            received_at=ensure_utc(email.received_at),
            storage_key=key,
        )
    )
    await db.commit()
    return True


async def _create_fallback_item(db: AsyncSession, source_id: int, email: InboundEmail, error: str) -> None:
    guid = f"{email.message_id}#fallback"
    if await repository.item_exists(db, source_id, guid):
        logger.debug("Fallback item %s already exists, skipping", guid)
        return

    db.add(
        Item(
            source_id=source_id,
            guid=guid,
            title=truncate(email.subject, MAX_TITLE_LENGTH),
            link=f"mailto:{email.message_id}",
            author=email.from_address,
            published_at=ensure_utc(email.received_at),
            raw_content=email.content,
            status=ItemStatus.ERROR,
            error_message=truncate(f"AI extraction failed: {error}", MAX_ERROR_LENGTH),
        )
    )
    await db.execute(
        update(Source)
        .where(Source.id == source_id)
        .values(last_error=truncate(f"Email extraction failed: {error}", MAX_ERROR_LENGTH))
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def ingest_email(
    db: AsyncSession,
    email: InboundEmail,
    scorer: Scorer,
    storage: BlobStorage,
    queue: JobQueue | None = None,
    settings: Settings | None = None,
) -> list[int]:
    """Route *email* to its source and store the extracted items.

    Routing misses are logged and dropped. Returns the ids of new items.
    """
    settings = settings or get_settings()
    logger.info("Processing incoming email %s from %s", email.subject, email.from_address)

    token = extract_token(email.recipient, settings.inbound_email_domain)
    if token is None:
        logger.warning("No routable recipient in email %s: %s", email.message_id, email.recipient)
        return []

    source = await repository.get_source_by_email_address(db, token)
    if source is None:
        logger.warning("No source found for inbound address %s", token)
        return []
    if source.status != SourceStatus.ACTIVE:
        logger.warning("Source %s is %s, skipping email %s", source.id, source.status, email.message_id)
        return []
    source_id = source.id

    await store_raw_email(db, storage, source_id, email)

    text = html_to_text(email.content) or ""
    try:
        extracted = await scorer.extract_from_email(email.subject, text)
    except Exception as e:
        await db.rollback()
        logger.error("Failed to extract items from email %s: %s", email.message_id, e)
        await _create_fallback_item(db, source_id, email, str(e))
        return []

    new_items: list[Item] = []
    for index, entry in enumerate(extracted):
        guid = f"{email.message_id}#{index}"
        if await repository.item_exists(db, source_id, guid):
            logger.debug("Item %s already exists, skipping", guid)
            continue
        link = entry.url.strip() if entry.url and entry.url.strip() else f"mailto:{email.message_id}"
        item = Item(
            source_id=source_id,
            guid=guid,
            title=truncate(entry.title, MAX_TITLE_LENGTH),
            link=truncate(link, MAX_LINK_LENGTH),
            author=email.from_address,
            published_at=ensure_utc(email.received_at),
            raw_content=email.content,
            clean_content=entry.summary,
            summary=entry.summary,
            status=ItemStatus.NEW,
        )
        db.add(item)
        new_items.append(item)

    await db.flush()
    new_ids = [item.id for item in new_items]
    await db.execute(
        update(Source)
        .where(Source.id == source_id)
        .values(last_fetched_at=now_utc(), last_error=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("Extracted %d items from email %s for source %s", len(new_ids), email.message_id, source_id)

    if queue is not None:
        for item_id in new_ids:
            try:
                await queue.enqueue_processing(item_id)
            except Exception as e:
                logger.warning("Failed to enqueue processing for item %s: %s", item_id, e)
    return new_ids
