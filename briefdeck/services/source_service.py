"""Source creation and brief removal."""

import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import Settings, get_settings
from briefdeck.constants import DEFAULT_REFRESH_MINUTES, EMAIL_URL_PREFIX, REDDIT_URL_PREFIX
from briefdeck.db import repository
from briefdeck.models import FetchStatus, Source, SourceStatus, SourceType
from briefdeck.services.fetchers import FetcherRegistry
from briefdeck.services.fetchers.social_link import extract_community
from briefdeck.services.url_normalizer import normalize
from briefdeck.services.url_safety import UnsafeUrlError, check_url

logger = logging.getLogger(__name__)


class BriefNotFoundError(Exception):
    """Raised when the target brief does not exist."""


class DuplicateSourceError(Exception):
    """Raised when the brief already has a source with the same URL."""


class SourceValidationError(Exception):
    """Raised when the source definition is invalid or cannot be fetched."""


async def create_source(
    db: AsyncSession,
    registry: FetcherRegistry,
    brief_id: int,
    type: SourceType,
    url: str | None = None,
    name: str | None = None,
    refresh_interval_minutes: int | None = None,
    extraction_prompt: str | None = None,
    settings: Settings | None = None,
) -> Source:
    """Validate and persist a new source for *brief_id*.

    Raises BriefNotFoundError, DuplicateSourceError or SourceValidationError.
    """
    settings = settings or get_settings()
    type = SourceType(type)

    if await repository.get_brief(db, brief_id) is None:
        raise BriefNotFoundError(f"Brief {brief_id} not found")

    email_address = None
    if type == SourceType.EMAIL:
        if not name or not name.strip():
            raise SourceValidationError("Name is required for email sources")
        email_address = str(uuid.uuid4())
        url = f"{EMAIL_URL_PREFIX}{email_address}"
        refresh_interval_minutes = 0
    else:
        url = _canonical_url(type, url, settings)
        if type == SourceType.WEB and not (extraction_prompt and extraction_prompt.strip()):
            raise SourceValidationError("Extraction prompt is required for web sources")
        if refresh_interval_minutes is None:
            refresh_interval_minutes = DEFAULT_REFRESH_MINUTES[type.value]
        elif refresh_interval_minutes < 1:
            raise SourceValidationError("Refresh interval must be at least 1 minute")

    if await repository.source_url_exists(db, brief_id, url):
        raise DuplicateSourceError(f"Source already exists for URL: {url}")

    if type != SourceType.EMAIL:
        fetcher = registry.get(type)
        if fetcher is None:
            raise SourceValidationError(f"Unsupported source type: {type}")
        validation = await fetcher.validate(url)
        if not validation.valid:
            raise SourceValidationError(validation.error or "Source validation failed")
        if not name or not name.strip():
            name = validation.title or url

    source = Source(
        brief_id=brief_id,
        name=name.strip()[:255],
        type=type,
        status=SourceStatus.ACTIVE,
        fetch_status=FetchStatus.IDLE,
        url=url,
        refresh_interval_minutes=refresh_interval_minutes,
        email_address=email_address,
        extraction_prompt=extraction_prompt if type == SourceType.WEB else None,
    )
    db.add(source)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateSourceError(f"Source already exists for URL: {url}") from e

    logger.info("Created %s source %s for brief %s", type, source.id, brief_id)
    return source


def _canonical_url(type: SourceType, url: str | None, settings: Settings) -> str:
    if not url or not url.strip():
        raise SourceValidationError("URL is required")

    if type == SourceType.SOCIAL_LINK:
        community = extract_community(url)
        if community is None:
            raise SourceValidationError("Community name is required")
        return f"{REDDIT_URL_PREFIX}{community}"

    try:
        check_url(url, allow_localhost=settings.web_fetch_allow_localhost)
    except UnsafeUrlError as e:
        raise SourceValidationError(str(e)) from e
    return normalize(url)


async def delete_brief(db: AsyncSession, brief_id: int) -> None:
    """Remove a brief with everything it owns. Raises BriefNotFoundError."""
    if not await repository.delete_brief(db, brief_id):
        raise BriefNotFoundError(f"Brief {brief_id} not found")
    logger.info("Deleted brief %s", brief_id)
