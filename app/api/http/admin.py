from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.api.http.pastes import to_list_response
from app.core.auth import require_admin
from app.core.db import get_db
from app.domains.identity.entities import User
from app.domains.pastes.cleanup import PasteCleanupScheduler
from app.domains.pastes.schemas import (
    PasteListResponse, CleanupResultResponse, CleanupStatusResponse, PasteStatisticsResponse
)
from app.domains.pastes.services import PasteService
from app.domains.pastes.stats import StatsCache, get_paste_statistics

router = APIRouter(prefix="/admin", tags=["admin"])


def get_cleanup_scheduler(request: Request) -> PasteCleanupScheduler:
    return request.app.state.cleanup_scheduler


def get_stats_cache(request: Request) -> StatsCache:
    return request.app.state.stats_cache


@router.get("/pastes", response_model=PasteListResponse)
async def list_all_pastes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Every live paste, searchable by title, language, slug or owner"""
    paste_service = PasteService(db)
    result = await paste_service.list_all_pastes(page=page, limit=limit, search=search)
    return to_list_response(result)


@router.get("/stats", response_model=PasteStatisticsResponse)
async def paste_statistics(
    admin: User = Depends(require_admin),
    cache: StatsCache = Depends(get_stats_cache),
    db: AsyncSession = Depends(get_db)
):
    """Totals, visibility and language breakdowns, top pastes and users"""
    stats = await get_paste_statistics(db, cache)
    return PasteStatisticsResponse.model_validate(stats)


@router.get("/cleanup", response_model=CleanupStatusResponse)
async def cleanup_status(
    admin: User = Depends(require_admin),
    scheduler: PasteCleanupScheduler = Depends(get_cleanup_scheduler)
):
    status_data = scheduler.status()
    last_run = status_data.pop("last_run")
    return CleanupStatusResponse(
        **status_data,
        last_run=CleanupResultResponse.model_validate(last_run) if last_run else None,
    )


@router.post("/cleanup", response_model=CleanupResultResponse)
async def trigger_cleanup(
    admin: User = Depends(require_admin),
    scheduler: PasteCleanupScheduler = Depends(get_cleanup_scheduler)
):
    """Delete expired pastes now"""
    result = await scheduler.trigger()
    return CleanupResultResponse.model_validate(result)
