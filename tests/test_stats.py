from datetime import timedelta

from sqlalchemy import update

from app.db.models.paste import Paste as PasteModel
from app.domains.pastes.entities import Visibility
from app.domains.pastes.schemas import PasteCreate
from app.domains.pastes.services import PasteService
from app.domains.pastes.stats import StatsCache, get_paste_statistics
from app.utils.time import utc_now


async def set_columns(db, paste_id, **values):
    await db.execute(update(PasteModel).where(PasteModel.id == paste_id).values(**values))
    await db.commit()


async def test_statistics_on_empty_database(db):
    stats = await get_paste_statistics(db)

    assert stats.total_pastes == 0
    assert stats.average_views_per_paste == 0
    assert stats.visibility_breakdown == {"PUBLIC": 0, "AUTHENTICATED": 0, "INVITE_ONLY": 0, "PRIVATE": 0}
    assert stats.most_viewed_paste is None
    assert stats.most_active_users == []


async def test_statistics_aggregates(db, users):
    service = PasteService(db)
    popular = await service.create_paste(
        PasteCreate(content="a", language="python", title="popular"), users["owner"]
    )
    await service.create_paste(PasteCreate(content="b", language="python", password="pw"), users["owner"])
    await service.create_paste(
        PasteCreate(content="c", visibility=Visibility.PRIVATE, language="go"), users["other"]
    )
    old_guest = await service.create_paste(PasteCreate(content="d"), None)

    await set_columns(db, popular.id, views=7, unique_views=3)
    await set_columns(db, old_guest.id, views=1, created_at=utc_now() - timedelta(days=10))

    stats = await get_paste_statistics(db)

    assert stats.total_pastes == 4
    assert stats.total_views == 8
    assert stats.total_unique_views == 3
    assert stats.average_views_per_paste == 2.0
    assert stats.authed_pastes == 3
    assert stats.unauthed_pastes == 1
    assert stats.password_protected_count == 1
    assert stats.visibility_breakdown["PUBLIC"] == 3
    assert stats.visibility_breakdown["PRIVATE"] == 1
    assert stats.visibility_breakdown["INVITE_ONLY"] == 0
    assert [(lang.language, lang.count) for lang in stats.language_distribution][0] == ("python", 2)
    assert stats.most_viewed_paste.id == popular.id
    assert stats.most_viewed_paste.owner_username == "owner"
    assert [(u.username, u.paste_count) for u in stats.most_active_users] == [("owner", 2), ("other", 1)]
    assert stats.recent_activity.last_24h == 3
    assert stats.recent_activity.last_7d == 3
    assert stats.recent_activity.last_30d == 4


async def test_guest_most_viewed_reports_guest(db):
    paste = await PasteService(db).create_paste(PasteCreate(content="anon"), None)
    await set_columns(db, paste.id, views=2)

    stats = await get_paste_statistics(db)

    assert stats.most_viewed_paste.owner_username == "Guest"


async def test_cached_statistics_are_reused(db, users):
    cache = StatsCache(ttl_seconds=60)
    first = await get_paste_statistics(db, cache)

    await PasteService(db).create_paste(PasteCreate(content="new"), users["owner"])
    second = await get_paste_statistics(db, cache)

    assert second is first
    assert second.total_pastes == 0
    assert (await get_paste_statistics(db)).total_pastes == 1


async def test_expired_cache_is_recomputed(db, users):
    cache = StatsCache(ttl_seconds=0)
    await get_paste_statistics(db, cache)

    await PasteService(db).create_paste(PasteCreate(content="new"), users["owner"])

    assert (await get_paste_statistics(db, cache)).total_pastes == 1
