import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repositories.stats_repository import PasteStatsRepository
from app.domains.pastes.entities import Visibility
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class LanguageCount:
    language: str
    count: int


@dataclass
class MostViewedPaste:
    id: str
    title: Optional[str]
    views: int
    visibility: Visibility
    created_at: datetime
    custom_slug: Optional[str]
    owner_username: str


@dataclass
class ActiveUser:
    user_id: uuid.UUID
    username: str
    paste_count: int


@dataclass
class RecentActivity:
    last_24h: int = 0
    last_7d: int = 0
    last_30d: int = 0


@dataclass
class PasteStatistics:
    total_pastes: int
    total_views: int
    total_unique_views: int
    average_views_per_paste: float
    authed_pastes: int
    unauthed_pastes: int
    password_protected_count: int
    visibility_breakdown: Dict[str, int]
    language_distribution: List[LanguageCount] = field(default_factory=list)
    most_viewed_paste: Optional[MostViewedPaste] = None
    most_active_users: List[ActiveUser] = field(default_factory=list)
    recent_activity: RecentActivity = field(default_factory=RecentActivity)
    generated_at: datetime = field(default_factory=utc_now)


class StatsCache:
    """Keeps the last computed statistics for ttl_seconds.

    One instance lives on app.state; it is not shared between processes.
    """

    def __init__(self, ttl_seconds: float = 60):
        self.ttl_seconds = ttl_seconds
        self._value: Optional[PasteStatistics] = None
        self._stored_at = 0.0

    def get(self) -> Optional[PasteStatistics]:
        if self._value is None or time.monotonic() - self._stored_at >= self.ttl_seconds:
            return None
        return self._value

    def set(self, value: PasteStatistics) -> None:
        self._value = value
        self._stored_at = time.monotonic()


async def get_paste_statistics(session: AsyncSession, cache: Optional[StatsCache] = None) -> PasteStatistics:
    """Dashboard numbers over every paste row, served from the cache while fresh"""
    if cache is not None:
        cached = cache.get()
        if cached is not None:
            return cached

    repository = PasteStatsRepository(session)
    now = utc_now()
    totals = await repository.totals(
        since_24h=now - timedelta(hours=24),
        since_7d=now - timedelta(days=7),
        since_30d=now - timedelta(days=30),
    )

    breakdown = {visibility.value: 0 for visibility in Visibility}
    breakdown.update(await repository.count_by_visibility())

    most_viewed = await repository.most_viewed()
    if most_viewed is not None:
        most_viewed["owner_username"] = most_viewed["owner_username"] or "Guest"
        most_viewed = MostViewedPaste(**most_viewed)

    total = totals["total_pastes"]
    stats = PasteStatistics(
        total_pastes=total,
        total_views=totals["total_views"],
        total_unique_views=totals["total_unique_views"],
        average_views_per_paste=round(totals["total_views"] / total, 2) if total else 0.0,
        authed_pastes=totals["authed_pastes"],
        unauthed_pastes=totals["unauthed_pastes"],
        password_protected_count=totals["password_protected"],
        visibility_breakdown=breakdown,
        language_distribution=[LanguageCount(**row) for row in await repository.language_distribution()],
        most_viewed_paste=most_viewed,
        most_active_users=[ActiveUser(**row) for row in await repository.most_active_users()],
        recent_activity=RecentActivity(
            last_24h=totals["last_24h"],
            last_7d=totals["last_7d"],
            last_30d=totals["last_30d"],
        ),
        generated_at=now,
    )
    logger.debug(f"Computed paste statistics over {total} paste(s)")

    if cache is not None:
        cache.set(stats)
    return stats
