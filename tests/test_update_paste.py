from datetime import timedelta, timezone

import pytest
from sqlalchemy import select, func

from app.core.config import settings
from app.db.models.paste import Paste as PasteModel, PasteVersion as PasteVersionModel
from app.domains.pastes.entities import Visibility
from app.domains.pastes.exceptions import PasteNotFoundError, SlugTakenError, PasteLimitExceededError
from app.domains.pastes.schemas import PasteCreate, PasteUpdate
from app.domains.pastes.services import PasteService
from app.domains.pastes.versions import VersionStore
from app.utils.time import utc_now


async def count_pastes(db) -> int:
    return (await db.execute(select(func.count()).select_from(PasteModel))).scalar()


async def count_versions(db, paste_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(PasteVersionModel).where(PasteVersionModel.paste_id == paste_id)
    )
    return result.scalar()


@pytest.fixture
def service(db):
    return PasteService(db)


@pytest.fixture
async def versioned(service, users):
    return await service.create_paste(
        PasteCreate(content="v1", versioning_enabled=True, title="notes"),
        users["owner"],
    )


async def test_content_updates_build_history(db, service, users, versioned):
    owner = users["owner"]
    contents = ["v1", "v2", "v3", "v4"]

    paste = versioned
    for content in contents[1:]:
        paste = await service.update_paste(paste.id, PasteUpdate(content=content), owner.id)

    assert paste.current_version == len(contents)
    assert paste.content == "v4"
    assert await count_versions(db, paste.id) == len(contents) - 1

    store = VersionStore(db)
    for number, content in enumerate(contents[:-1], start=1):
        assert await store.get_version_content(paste.id, number) == content


async def test_version_meta_newest_first(db, service, users, versioned):
    owner = users["owner"]
    await service.update_paste(versioned.id, PasteUpdate(content="second!"), owner.id)
    await service.update_paste(versioned.id, PasteUpdate(content="third"), owner.id)

    meta = await VersionStore(db).list_version_meta(versioned.id)

    assert [m.version_number for m in meta] == [2, 1]
    assert [m.length for m in meta] == [len("second!"), len("v1")]


async def test_default_and_custom_change_description(db, service, users, versioned):
    owner = users["owner"]
    await service.update_paste(versioned.id, PasteUpdate(content="v2"), owner.id)
    await service.update_paste(versioned.id, PasteUpdate(content="v3", change_description="typo fix"), owner.id)

    result = await db.execute(
        select(PasteVersionModel.version_number, PasteVersionModel.change_description)
        .where(PasteVersionModel.paste_id == versioned.id)
        .order_by(PasteVersionModel.version_number)
    )
    assert result.all() == [(1, "Version 1"), (2, "typo fix")]


async def test_identical_payload_is_a_no_op(db, service, users, versioned):
    owner = users["owner"]
    payload = PasteUpdate(
        content=versioned.content,
        title=versioned.title,
        visibility=versioned.visibility,
        language=versioned.language,
        versioning_enabled=True,
        burn_after_reading=False,
    )

    result = await service.update_paste(versioned.id, payload, owner.id)

    assert result.current_version == versioned.current_version
    assert result.updated_at == versioned.updated_at
    assert await count_versions(db, versioned.id) == 0


async def test_empty_payload_is_a_no_op(service, users, versioned):
    result = await service.update_paste(versioned.id, PasteUpdate(), users["owner"].id)

    assert result.updated_at == versioned.updated_at
    assert result.content == versioned.content


async def test_omitted_fields_are_kept(service, users, versioned):
    result = await service.update_paste(versioned.id, PasteUpdate(language="python"), users["owner"].id)

    assert result.language == "python"
    assert result.title == "notes"
    assert result.content == "v1"
    assert result.current_version == 1


async def test_empty_string_clears_optional_text(service, users, versioned):
    result = await service.update_paste(versioned.id, PasteUpdate(title=""), users["owner"].id)

    assert result.title is None


async def test_unchanged_expiry_in_other_timezone_is_not_a_change(service, users):
    expires = (utc_now() + timedelta(days=1)).replace(microsecond=0)
    paste = await service.create_paste(PasteCreate(content="x", expires_at=expires), users["owner"])

    same_instant = expires.replace(tzinfo=timezone.utc).astimezone(timezone(timedelta(hours=5)))
    result = await service.update_paste(paste.id, PasteUpdate(expires_at=same_instant), users["owner"].id)

    assert result.updated_at == paste.updated_at


async def test_disabling_versioning_wipes_history(db, service, users, versioned):
    owner = users["owner"]
    await service.update_paste(versioned.id, PasteUpdate(content="v2"), owner.id)
    paste = await service.update_paste(
        versioned.id, PasteUpdate(content="v3", version_history_visible=True), owner.id
    )
    assert paste.current_version == 3

    paste = await service.update_paste(versioned.id, PasteUpdate(versioning_enabled=False), owner.id)

    assert paste.versioning_enabled is False
    assert paste.version_history_visible is False
    assert paste.current_version == 1
    assert await count_versions(db, versioned.id) == 0


async def test_content_change_without_versioning_stays_at_one(db, service, users):
    owner = users["owner"]
    paste = await service.create_paste(PasteCreate(content="plain"), owner)

    paste = await service.update_paste(paste.id, PasteUpdate(content="plainer"), owner.id)

    assert paste.content == "plainer"
    assert paste.current_version == 1
    assert await count_versions(db, paste.id) == 0


async def test_enabling_versioning_with_content_change_snapshots_prior(db, service, users):
    owner = users["owner"]
    paste = await service.create_paste(PasteCreate(content="before"), owner)

    paste = await service.update_paste(
        paste.id, PasteUpdate(content="after", versioning_enabled=True), owner.id
    )

    assert paste.current_version == 2
    assert await VersionStore(db).get_version_content(paste.id, 1) == "before"


async def test_history_visible_requires_versioning(service, users):
    owner = users["owner"]
    paste = await service.create_paste(PasteCreate(content="x"), owner)

    with pytest.raises(ValueError):
        await service.update_paste(paste.id, PasteUpdate(version_history_visible=True), owner.id)


async def test_update_missing_paste(service, users):
    with pytest.raises(PasteNotFoundError):
        await service.update_paste("missing1", PasteUpdate(content="x"), users["owner"].id)


async def test_create_with_taken_slug_writes_nothing(db, service, users):
    await service.create_paste(PasteCreate(content="b", custom_slug="abc"), users["owner"])
    before = await count_pastes(db)

    with pytest.raises(SlugTakenError):
        await service.create_paste(PasteCreate(content="c", custom_slug="abc"), users["other"])

    assert await count_pastes(db) == before


async def test_update_to_taken_slug_changes_nothing(service, users):
    await service.create_paste(PasteCreate(content="b", custom_slug="abc"), users["owner"])
    other = await service.create_paste(PasteCreate(content="c", title="mine"), users["other"])

    with pytest.raises(SlugTakenError):
        await service.update_paste(
            other.id, PasteUpdate(custom_slug="abc", title="changed"), users["other"].id
        )

    reloaded = await service.find_paste_by_slug(other.id)
    assert reloaded.custom_slug is None
    assert reloaded.title == "mine"


async def test_slug_cannot_reuse_another_paste_id(service, users):
    first = await service.create_paste(PasteCreate(content="a"), users["owner"])

    with pytest.raises(SlugTakenError):
        await service.create_paste(PasteCreate(content="b", custom_slug=first.id), users["other"])


async def test_keeping_own_slug_is_allowed(service, users):
    paste = await service.create_paste(PasteCreate(content="a", custom_slug="mine"), users["owner"])

    result = await service.update_paste(paste.id, PasteUpdate(custom_slug="mine"), users["owner"].id)

    assert result.custom_slug == "mine"


async def test_find_by_custom_slug_and_id(service, users):
    paste = await service.create_paste(PasteCreate(content="a", custom_slug="hello"), users["owner"])

    assert (await service.find_paste_by_slug("hello")).id == paste.id
    assert (await service.find_paste_by_slug(paste.id)).custom_slug == "hello"
    assert (await service.find_paste_by_slug("hello")).owner_username == "owner"


async def test_generated_ids_are_url_safe(service):
    paste_id = await service.generate_paste_id()

    assert len(paste_id) == 8
    assert all(c.isalnum() or c in "_-" for c in paste_id)


async def test_visibility_change_is_persisted(service, users):
    paste = await service.create_paste(PasteCreate(content="a"), users["owner"])

    result = await service.update_paste(
        paste.id, PasteUpdate(visibility=Visibility.PRIVATE), users["owner"].id
    )

    assert result.visibility == Visibility.PRIVATE


async def test_paste_limit_per_user(db, service, users, monkeypatch):
    monkeypatch.setattr(settings, "max_pastes_per_user", 2)
    owner = users["owner"]
    await service.create_paste(PasteCreate(content="one"), owner)
    await service.create_paste(PasteCreate(content="two"), owner)

    with pytest.raises(PasteLimitExceededError, match="maximum limit of 2 pastes"):
        await service.create_paste(PasteCreate(content="three"), owner)

    assert await count_pastes(db) == 2
    await service.create_paste(PasteCreate(content="guests are not limited"), None)
    await service.create_paste(PasteCreate(content="neither are others"), users["other"])
