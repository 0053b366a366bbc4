from datetime import timedelta

import pytest

from app.core.config import settings
from app.utils.time import utc_now


async def create(client, payload, user_headers=None):
    resp = await client.post("/pastes", json=payload, headers=user_headers or {})
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_register_login_me(client):
    resp = await client.post("/auth/register", json={
        "email": "newbie@example.com",
        "username": "newbie",
        "password": "Password123",
    })
    assert resp.status_code == 201
    assert resp.json()["role"] == "user"

    resp = await client.post("/auth/login", json={"email": "newbie@example.com", "password": "Password123"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["username"] == "newbie"


async def test_login_with_wrong_password(client, users):
    resp = await client.post("/auth/login", json={"email": "owner@example.com", "password": "Wrong12345"})

    assert resp.status_code == 401


async def test_guest_paste_view_counters(client):
    paste = await create(client, {"content": "hi there"})
    assert paste["owner_id"] is None
    assert paste["has_password"] is False

    first = (await client.get(f"/pastes/{paste['id']}")).json()
    second = (await client.get(f"/pastes/{paste['id']}")).json()

    assert first["paste"]["content"] == "hi there"
    assert first["paste"]["views"] == 1
    assert first["paste"]["unique_views"] == 1
    assert second["paste"]["views"] == 2
    assert second["paste"]["unique_views"] == 1


async def test_owner_views_are_not_unique(client, headers):
    paste = await create(client, {"content": "mine"}, headers["owner"])

    body = (await client.get(f"/pastes/{paste['id']}", headers=headers["owner"])).json()

    assert body["is_owner"] is True
    assert body["can_edit"] is True
    assert body["paste"]["views"] == 1
    assert body["paste"]["unique_views"] == 0


async def test_guest_creation_can_be_disabled(client, monkeypatch):
    monkeypatch.setattr(settings, "allow_guest_pastes", False)

    resp = await client.post("/pastes", json={"content": "nope"})

    assert resp.status_code == 401


@pytest.mark.parametrize("payload", [
    {"content": ""},
    {"content": "x", "custom_slug": "admin"},
    {"content": "x", "custom_slug": "has space"},
    {"content": "x", "visibility": "INVITE_ONLY"},
    {"content": "x", "version_history_visible": True},
    {"content": "x", "title": "t" * 256},
    {"content": "x" * 400_001},
])
async def test_create_validation(client, payload):
    resp = await client.post("/pastes", json=payload)

    assert resp.status_code == 422


async def test_create_rejects_past_expiry(client):
    past = (utc_now() - timedelta(hours=1)).isoformat()

    resp = await client.post("/pastes", json={"content": "x", "expires_at": past})

    assert resp.status_code == 422


async def test_create_with_taken_slug(client, headers):
    await create(client, {"content": "a", "custom_slug": "abc"}, headers["owner"])

    resp = await client.post("/pastes", json={"content": "b", "custom_slug": "abc"}, headers=headers["other"])

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Custom slug already taken"


async def test_view_by_custom_slug(client):
    await create(client, {"content": "slugged", "custom_slug": "my-notes"})

    resp = await client.get("/pastes/my-notes")

    assert resp.status_code == 200
    assert resp.json()["paste"]["slug"] == "my-notes"


async def test_missing_paste_is_404(client):
    resp = await client.get("/pastes/doesnotexist")

    assert resp.status_code == 404


async def test_authenticated_paste(client, headers):
    paste = await create(client, {"content": "members", "visibility": "AUTHENTICATED"}, headers["owner"])

    assert (await client.get(f"/pastes/{paste['id']}")).status_code == 401
    assert (await client.get(f"/pastes/{paste['id']}", headers=headers["other"])).status_code == 200


async def test_private_paste(client, headers):
    paste = await create(client, {"content": "diary", "visibility": "PRIVATE"}, headers["owner"])

    assert (await client.get(f"/pastes/{paste['id']}")).status_code == 401
    assert (await client.get(f"/pastes/{paste['id']}", headers=headers["other"])).status_code == 403
    assert (await client.get(f"/pastes/{paste['id']}", headers=headers["admin"])).status_code == 200


async def test_invite_only_paste(client, users, headers):
    paste = await create(client, {
        "content": "club",
        "visibility": "INVITE_ONLY",
        "invited_users": [str(users["other"].id)],
    }, headers["owner"])

    invited = await client.get(f"/pastes/{paste['id']}", headers=headers["other"])
    assert invited.status_code == 200
    assert [u["username"] for u in invited.json()["invited_users"]] == ["other"]
    assert (await client.get(f"/pastes/{paste['id']}", headers=headers["third"])).status_code == 403

    listed = await client.get(f"/pastes/{paste['id']}/invites", headers=headers["owner"])
    assert [u["id"] for u in listed.json()] == [str(users["other"].id)]
    assert (await client.get(f"/pastes/{paste['id']}/invites", headers=headers["other"])).status_code == 403

    resp = await client.request(
        "DELETE",
        f"/pastes/{paste['id']}/invites",
        json={"user_ids": [str(users["other"].id)]},
        headers=headers["owner"],
    )
    assert resp.json() == {"removed": 1}
    assert (await client.get(f"/pastes/{paste['id']}", headers=headers["other"])).status_code == 403


async def test_password_flow(client, headers):
    paste = await create(client, {"content": "classified", "password": "opensesame"}, headers["owner"])
    assert paste["has_password"] is True
    assert "password_hash" not in paste

    locked = (await client.get(f"/pastes/{paste['id']}", headers=headers["other"])).json()
    assert locked["password_required"] is True
    assert locked["paste"] is None

    wrong = await client.post(f"/pastes/{paste['id']}/unlock", json={"password": "guess"}, headers=headers["other"])
    assert wrong.status_code == 403

    right = await client.post(f"/pastes/{paste['id']}/unlock", json={"password": "opensesame"}, headers=headers["other"])
    assert right.status_code == 200
    assert right.json()["paste"]["content"] == "classified"

    owner_view = (await client.get(f"/pastes/{paste['id']}", headers=headers["owner"])).json()
    assert owner_view["password_required"] is False
    assert owner_view["paste"]["content"] == "classified"


async def test_edit_permissions_and_versioning(client, headers):
    paste = await create(client, {"content": "v1", "versioning_enabled": True}, headers["owner"])
    url = f"/pastes/{paste['id']}"

    assert (await client.patch(url, json={"content": "hacked"})).status_code == 401
    assert (await client.patch(url, json={"content": "hacked"}, headers=headers["other"])).status_code == 403

    resp = await client.patch(url, json={"content": "v2"}, headers=headers["owner"])
    assert resp.status_code == 200
    assert resp.json()["current_version"] == 2

    resp = await client.patch(url, json={"content": "v3"}, headers=headers["admin"])
    assert resp.status_code == 200
    assert resp.json()["current_version"] == 3

    versions = await client.get(f"{url}/versions", headers=headers["owner"])
    assert [v["version_number"] for v in versions.json()] == [2, 1]
    assert versions.json()[0]["delta"] == 0

    old = await client.get(f"{url}/versions/1", headers=headers["owner"])
    assert old.json()["content"] == "v1"

    assert (await client.get(f"{url}/versions", headers=headers["other"])).status_code == 403


async def test_view_old_version_does_not_count(client, headers):
    paste = await create(client, {
        "content": "v1", "versioning_enabled": True, "version_history_visible": True,
    }, headers["owner"])
    await client.patch(f"/pastes/{paste['id']}", json={"content": "v2"}, headers=headers["owner"])

    old = (await client.get(f"/pastes/{paste['id']}?version=1", headers=headers["other"])).json()
    assert old["paste"]["content"] == "v1"
    assert old["selected_version"] == 1
    assert old["can_view_history"] is True
    assert old["paste"]["views"] == 0

    latest = (await client.get(f"/pastes/{paste['id']}", headers=headers["other"])).json()
    assert latest["paste"]["content"] == "v2"
    assert latest["paste"]["views"] == 1
    assert latest["selected_version"] is None


async def test_update_to_taken_slug(client, headers):
    await create(client, {"content": "a", "custom_slug": "taken"}, headers["owner"])
    paste = await create(client, {"content": "b"}, headers["owner"])

    resp = await client.patch(f"/pastes/{paste['id']}", json={"custom_slug": "taken"}, headers=headers["owner"])

    assert resp.status_code == 400


async def test_delete_paste(client, headers):
    paste = await create(client, {"content": "bye"}, headers["owner"])
    url = f"/pastes/{paste['id']}"

    assert (await client.delete(url, headers=headers["other"])).status_code == 403
    assert (await client.delete(url, headers=headers["owner"])).status_code == 204
    assert (await client.get(url)).status_code == 404


async def test_burn_after_reading(client, headers):
    paste = await create(client, {"content": "self destruct", "burn_after_reading": True}, headers["owner"])
    url = f"/pastes/{paste['id']}"

    assert (await client.get(url, headers=headers["owner"])).status_code == 200
    read = await client.get(url, headers=headers["other"])
    assert read.status_code == 200
    assert read.json()["paste"]["content"] == "self destruct"
    assert (await client.get(url, headers=headers["other"])).status_code == 404


async def test_fork_endpoint(client, headers):
    paste = await create(client, {"content": "locked", "password": "pw", "custom_slug": "forkme"}, headers["owner"])

    denied = await client.get("/pastes/forkme/fork", headers=headers["other"])
    assert denied.status_code == 403

    draft = await client.get("/pastes/forkme/fork", headers=headers["owner"])
    assert draft.status_code == 200
    assert draft.json()["content"] == "locked"
    assert draft.json()["custom_slug"] == ""

    assert (await client.get("/pastes/missing1/fork")).status_code == 404
    assert paste["slug"] == "forkme"


async def test_transfer_endpoint(client, users, headers):
    paste = await create(client, {"content": "gift"}, headers["owner"])
    url = f"/pastes/{paste['id']}"

    denied = await client.post(f"{url}/transfer", json={"new_owner_id": str(users["third"].id)}, headers=headers["other"])
    assert denied.status_code == 403

    resp = await client.post(f"{url}/transfer", json={"new_owner_id": str(users["other"].id)}, headers=headers["owner"])
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Ownership transferred successfully"}

    assert (await client.patch(url, json={"title": "mine again"}, headers=headers["owner"])).status_code == 403

    same = await client.post(f"{url}/transfer", json={"new_owner_id": str(users["other"].id)}, headers=headers["other"])
    assert same.status_code == 400


async def test_slug_availability(client):
    assert (await client.get("/pastes/slug-available/fresh-slug")).json()["available"] is True
    assert (await client.get("/pastes/slug-available/Admin")).json()["available"] is False

    await create(client, {"content": "x", "custom_slug": "fresh-slug"})

    assert (await client.get("/pastes/slug-available/fresh-slug")).json()["available"] is False


async def test_my_pastes(client, headers):
    await create(client, {"content": "one", "title": "python tricks", "language": "python"}, headers["owner"])
    await create(client, {"content": "two", "password": "pw"}, headers["owner"])
    await create(client, {"content": "not mine"}, headers["other"])

    resp = await client.get("/me/pastes", headers=headers["owner"])
    body = resp.json()
    assert body["total"] == 2
    assert body["total_pages"] == 1
    assert sorted(p["has_password"] for p in body["pastes"]) == [False, True]
    assert all("content" not in p for p in body["pastes"])

    searched = (await client.get("/me/pastes?search=PYTHON", headers=headers["owner"])).json()
    assert [p["title"] for p in searched["pastes"]] == ["python tricks"]

    assert (await client.get("/me/pastes")).status_code == 401


async def test_admin_paste_list(client, headers):
    await create(client, {"content": "one"}, headers["owner"])
    await create(client, {"content": "two"}, headers["other"])

    assert (await client.get("/admin/pastes", headers=headers["owner"])).status_code == 403

    body = (await client.get("/admin/pastes", headers=headers["admin"])).json()
    assert body["total"] == 2

    by_owner = (await client.get("/admin/pastes?search=other", headers=headers["admin"])).json()
    assert [p["owner_username"] for p in by_owner["pastes"]] == ["other"]


async def test_admin_cleanup_endpoints(client, headers):
    assert (await client.post("/admin/cleanup", headers=headers["other"])).status_code == 403

    status = await client.get("/admin/cleanup", headers=headers["admin"])
    assert status.status_code == 200
    assert status.json()["enabled"] is False
    assert status.json()["last_run"] is None

    run = await client.post("/admin/cleanup", headers=headers["admin"])
    assert run.status_code == 200
    assert run.json()["deleted_count"] == 0

    status = await client.get("/admin/cleanup", headers=headers["admin"])
    assert status.json()["last_run"]["deleted_count"] == 0


async def test_user_search_and_admin_actions(client, users, headers):
    assert (await client.get("/users?search=oth")).status_code == 401

    found = await client.get("/users?search=oth", headers=headers["owner"])
    assert [u["username"] for u in found.json()] == ["other"]

    other_id = users["other"].id
    assert (await client.patch(f"/users/{other_id}/ban", json={"banned": True}, headers=headers["owner"])).status_code == 403

    banned = await client.patch(f"/users/{other_id}/ban", json={"banned": True}, headers=headers["admin"])
    assert banned.json()["is_banned"] is True
    assert (await client.get("/auth/me", headers=headers["other"])).status_code == 403

    promoted = await client.patch(f"/users/{users['third'].id}/role", json={"role": "admin"}, headers=headers["admin"])
    assert promoted.json()["role"] == "admin"
    assert (await client.get("/admin/pastes", headers=headers["third"])).status_code == 200


async def test_raw_endpoint(client, headers):
    paste = await create(client, {"content": "<b>not html</b>"}, headers["owner"])

    resp = await client.get(f"/pastes/{paste['id']}/raw")

    assert resp.status_code == 200
    assert resp.text == "<b>not html</b>"
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"

    view = (await client.get(f"/pastes/{paste['id']}", headers=headers["owner"])).json()
    assert view["paste"]["views"] == 2


async def test_raw_endpoint_password(client, headers):
    paste = await create(client, {"content": "classified", "password": "opensesame"}, headers["owner"])
    url = f"/pastes/{paste['id']}/raw"

    assert (await client.get(url)).status_code == 403
    assert (await client.get(url, params={"password": "wrong"})).status_code == 403
    assert (await client.get(url, params={"password": "opensesame"})).text == "classified"
    assert (await client.get(url, headers={"X-Paste-Password": "opensesame"})).text == "classified"
    assert (await client.get(url, headers=headers["owner"])).text == "classified"


async def test_raw_endpoint_access(client, headers):
    paste = await create(client, {"content": "diary", "visibility": "PRIVATE"}, headers["owner"])
    url = f"/pastes/{paste['id']}/raw"

    assert (await client.get(url)).status_code == 401
    assert (await client.get(url, headers=headers["other"])).status_code == 403
    assert (await client.get("/pastes/nothere1/raw")).status_code == 404


async def test_admin_stats(client, headers):
    await create(client, {"content": "one", "language": "python"}, headers["owner"])
    await create(client, {"content": "two", "password": "pw"}, headers["other"])

    assert (await client.get("/admin/stats", headers=headers["owner"])).status_code == 403

    resp = await client.get("/admin/stats", headers=headers["admin"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_pastes"] == 2
    assert body["password_protected_count"] == 1
    assert body["visibility_breakdown"]["PUBLIC"] == 2
    assert body["recent_activity"]["last_24h"] == 2
    assert {u["username"] for u in body["most_active_users"]} == {"owner", "other"}


async def test_paste_limit_over_http(client, headers, monkeypatch):
    monkeypatch.setattr(settings, "max_pastes_per_user", 1)
    await create(client, {"content": "first"}, headers["owner"])

    resp = await client.post("/pastes", json={"content": "second"}, headers=headers["owner"])

    assert resp.status_code == 400
    assert resp.json()["detail"] == "You have reached the maximum limit of 1 pastes"


async def test_invite_only_with_only_yourself(client, users, headers):
    resp = await client.post("/pastes", json={
        "content": "alone",
        "visibility": "INVITE_ONLY",
        "invited_users": [str(users["owner"].id)],
    }, headers=headers["owner"])

    assert resp.status_code == 400
