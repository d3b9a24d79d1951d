"""API routes: JSON endpoints for sources, brief execution and reports."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from briefdeck.config import get_settings
from briefdeck.db import repository
from briefdeck.db.session import get_db
from briefdeck.dependencies import get_job_queue, get_registry
from briefdeck.models import Source
from briefdeck.queue import JobQueue
from briefdeck.schemas.report import ExecuteBriefResponse, ReportDetail, ReportEntry
from briefdeck.schemas.source import SourceCreate, SourceDetail
from briefdeck.services.brief_schedule import BriefNotQueuedError, execute_brief_now
from briefdeck.services.fetchers import FetcherRegistry
from briefdeck.services.source_service import (
    BriefNotFoundError,
    DuplicateSourceError,
    SourceValidationError,
    create_source,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["api"])


def _source_detail(source: Source) -> SourceDetail:
    detail = SourceDetail.model_validate(source)
    if source.email_address:
        detail.inbound_address = f"{source.email_address}@{get_settings().inbound_email_domain}"
    return detail


@router.post("/briefs/{brief_id}/sources", response_model=SourceDetail, status_code=status.HTTP_201_CREATED)
async def add_source(
    brief_id: int,
    body: SourceCreate,
    db: AsyncSession = Depends(get_db),
    registry: FetcherRegistry = Depends(get_registry),
):
    try:
        source = await create_source(
            db,
            registry,
            brief_id,
            body.type,
            url=body.url,
            name=body.name,
            refresh_interval_minutes=body.refresh_interval_minutes,
            extraction_prompt=body.extraction_prompt,
        )
    except BriefNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateSourceError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SourceValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _source_detail(source)


@router.get("/sources/{source_id}", response_model=SourceDetail)
async def get_source(source_id: int, db: AsyncSession = Depends(get_db)):
    source = await repository.get_source(db, source_id)
    if source is None:
        raise HTTPException(status_code=404, detail="Source not found")
    return _source_detail(source)


@router.post("/briefs/{brief_id}/execute", response_model=ExecuteBriefResponse, status_code=status.HTTP_202_ACCEPTED)
async def execute_brief(
    brief_id: int,
    db: AsyncSession = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
):
    if await repository.get_brief(db, brief_id) is None:
        raise HTTPException(status_code=404, detail="Brief not found")
    try:
        await execute_brief_now(db, queue, brief_id)
    except BriefNotQueuedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ExecuteBriefResponse(brief_id=brief_id, status="QUEUED")


@router.get("/briefs/{brief_id}/reports/latest", response_model=ReportDetail)
async def latest_report(brief_id: int, db: AsyncSession = Depends(get_db)):
    report = await repository.get_latest_report(db, brief_id)
    if report is None:
        raise HTTPException(status_code=404, detail="No report yet")

    entries = await repository.get_report_entries(db, report.id)
    return ReportDetail(
        id=report.id,
        brief_id=report.brief_id,
        status=report.status,
        generated_at=report.generated_at,
        items=[
            ReportEntry(
                position=entry.position,
                score=entry.score,
                item_id=item.id,
                title=item.title,
                link=item.link,
                summary=item.summary,
                published_at=item.published_at,
            )
            for entry, item in entries
        ],
    )
