"""
Admin console API tests.

Covers store provisioning (ids, slugs, initial users, seeded settings),
slug renames with redirects, deactivation, user management with the
deleted-user archive, administrator management, audit logs and admin role
enforcement.

Run with: pytest tests/test_admin_api.py -v
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from conftest import ACME_ID, BETA_ID, PASSWORD, admin_headers, create_admin
from orderdesk.models import DeletedStoreUser, utcnow
from orderdesk.roles import AdminRole


def new_store_payload(**overrides):
    payload = {
        "store_name": "Café Beauté",
        "users": [
            {"username": "owner", "password": "owner-pass", "role": "STORE_ADMIN"},
            {"username": "clerk", "password": "clerk-pass", "role": "DATA_ENTRY"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def viewer_admin_headers(async_session):
    return admin_headers(await create_admin(async_session, "auditor", AdminRole.VIEWER))


@pytest.fixture
async def editor_admin_headers(async_session):
    return admin_headers(await create_admin(async_session, "editor", AdminRole.ADMIN))


# ────────────────────────────────────────────────────────────────
# Session
# ────────────────────────────────────────────────────────────────

class TestAdminLogin:
    @pytest.mark.asyncio
    async def test_login_and_me(self, client, super_admin):
        response = await client.post("/api/admin/login", json={"username": "root", "password": PASSWORD})
        assert response.status_code == 200
        token = response.json()["session"]["token"]

        me = await client.get("/api/admin/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["role"] == "SUPER_ADMIN"

    @pytest.mark.asyncio
    async def test_bad_password(self, client, super_admin):
        response = await client.post("/api/admin/login", json={"username": "root", "password": "nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_token_is_not_a_store_session(self, client, super_admin_headers, acme):
        response = await client.get("/api/store/stats", headers=super_admin_headers)
        assert response.status_code == 401


# ────────────────────────────────────────────────────────────────
# Stores
# ────────────────────────────────────────────────────────────────

class TestCreateStore:
    @pytest.mark.asyncio
    async def test_create_store_with_generated_slug(self, client, super_admin_headers):
        response = await client.post("/api/admin/stores", json=new_store_payload(), headers=super_admin_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["store"]["store_id"] == "10000000"
        assert body["store"]["store_slug"] == "cafe-beaute"
        assert body["store"]["user_count"] == 2
        assert [u["role"] for u in body["users"]] == ["STORE_ADMIN", "DATA_ENTRY"]

    @pytest.mark.asyncio
    async def test_new_store_users_can_sign_in(self, client, super_admin_headers):
        await client.post("/api/admin/stores", json=new_store_payload(), headers=super_admin_headers)

        response = await client.post(
            "/api/auth/store-login",
            json={"store": "cafe-beaute", "username": "clerk", "password": "clerk-pass"},
        )
        assert response.status_code == 200
        token = response.json()["session"]["token"]

        statuses = await client.get("/api/store/statuses", headers={"Authorization": f"Bearer {token}"})
        assert len(statuses.json()) == 6

    @pytest.mark.asyncio
    async def test_store_ids_follow_existing(self, client, super_admin_headers, acme):
        response = await client.post("/api/admin/stores", json=new_store_payload(), headers=super_admin_headers)
        assert response.json()["store"]["store_id"] == "10234568"

    @pytest.mark.asyncio
    async def test_historical_slug_is_not_handed_out(self, client, super_admin_headers, acme):
        response = await client.post(
            "/api/admin/stores",
            json=new_store_payload(store_slug="acme"),
            headers=super_admin_headers,
        )
        assert response.json()["store"]["store_slug"] == "acme-2"

    @pytest.mark.asyncio
    async def test_long_name_collision_keeps_slug_resolvable(self, client, super_admin_headers):
        payload = new_store_payload(store_name="B" * 100)
        first = await client.post("/api/admin/stores", json=payload, headers=super_admin_headers)
        second = await client.post("/api/admin/stores", json=payload, headers=super_admin_headers)
        assert first.status_code == second.status_code == 201

        slug = second.json()["store"]["store_slug"]
        assert len(slug) == 100
        assert slug.endswith("-2")

        resolved = await client.get(f"/api/stores/resolve/{slug}")
        assert resolved.status_code == 200
        assert resolved.json()["store_id"] == second.json()["store"]["store_id"]
        assert resolved.json()["needs_redirect"] is False

    @pytest.mark.asyncio
    async def test_invalid_explicit_slug(self, client, super_admin_headers):
        response = await client.post(
            "/api/admin/stores",
            json=new_store_payload(store_slug="bad slug!"),
            headers=super_admin_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_PAYLOAD"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "users",
        [
            [{"username": "clerk", "password": "clerk-pass", "role": "DATA_ENTRY"}],
            [
                {"username": "owner", "password": "owner-pass", "role": "STORE_ADMIN"},
                {"username": "owner", "password": "other-pass", "role": "VIEWER"},
            ],
            [],
        ],
    )
    async def test_user_list_rules(self, client, super_admin_headers, users):
        response = await client.post(
            "/api/admin/stores",
            json=new_store_payload(users=users),
            headers=super_admin_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_viewer_cannot_create(self, client, viewer_admin_headers):
        response = await client.post("/api/admin/stores", json=new_store_payload(), headers=viewer_admin_headers)
        assert response.status_code == 403


class TestReadStores:
    @pytest.mark.asyncio
    async def test_list_with_user_counts(self, client, viewer_admin_headers, acme_admin, acme_clerk, beta):
        response = await client.get("/api/admin/stores", headers=viewer_admin_headers)
        assert response.status_code == 200
        counts = {s["store_id"]: s["user_count"] for s in response.json()}
        assert counts == {ACME_ID: 2, "20000001": 0}

    @pytest.mark.asyncio
    async def test_list_active_only(self, client, viewer_admin_headers, acme, async_session):
        acme.is_active = False
        await async_session.commit()
        response = await client.get(
            "/api/admin/stores", params={"include_inactive": False}, headers=viewer_admin_headers
        )
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_get_store_with_previous_slugs(self, client, viewer_admin_headers, acme_admin):
        response = await client.get(f"/api/admin/stores/{ACME_ID}", headers=viewer_admin_headers)
        body = response.json()
        assert body["store"]["store_slug"] == "acme-shop"
        assert body["previous_slugs"] == ["acme"]
        assert [u["username"] for u in body["users"]] == ["owner"]

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_store_ids(self, client, viewer_admin_headers):
        assert (await client.get("/api/admin/stores/99999999", headers=viewer_admin_headers)).status_code == 404
        assert (await client.get("/api/admin/stores/abc", headers=viewer_admin_headers)).status_code == 400


class TestUpdateStore:
    @pytest.mark.asyncio
    async def test_rename_slug_redirects_old_links(self, client, editor_admin_headers, acme):
        response = await client.patch(
            f"/api/admin/stores/{ACME_ID}",
            json={"store_slug": "acme-market", "store_name": "Acme Market"},
            headers=editor_admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["store_slug"] == "acme-market"
        assert response.json()["store_name"] == "Acme Market"

        for old in ("acme", "acme-shop"):
            resolved = (await client.get(f"/api/stores/resolve/{old}")).json()
            assert resolved == {"store_id": ACME_ID, "current_slug": "acme-market", "needs_redirect": True}

    @pytest.mark.asyncio
    async def test_rename_to_taken_slug(self, client, editor_admin_headers, acme, beta):
        response = await client.patch(
            "/api/admin/stores/20000001", json={"store_slug": "acme"}, headers=editor_admin_headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SLUG_CONFLICT"

    @pytest.mark.asyncio
    async def test_only_super_admin_deactivates(self, client, editor_admin_headers, super_admin_headers, acme):
        denied = await client.patch(
            f"/api/admin/stores/{ACME_ID}", json={"is_active": False}, headers=editor_admin_headers
        )
        assert denied.status_code == 403

        allowed = await client.post(f"/api/admin/stores/{ACME_ID}/deactivate", headers=super_admin_headers)
        assert allowed.status_code == 200
        assert allowed.json()["is_active"] is False

    @pytest.mark.asyncio
    async def test_deactivated_store_refuses_login(self, client, super_admin_headers, acme_admin):
        await client.post(f"/api/admin/stores/{ACME_ID}/deactivate", headers=super_admin_headers)
        response = await client.post(
            "/api/auth/store-login",
            json={"store": ACME_ID, "username": "owner", "password": PASSWORD},
        )
        assert response.status_code == 423


# ────────────────────────────────────────────────────────────────
# Store Users and Administrators
# ────────────────────────────────────────────────────────────────

class TestStoreUserManagement:
    @pytest.mark.asyncio
    async def test_add_update_delete_user(self, client, super_admin_headers, acme):
        created = await client.post(
            f"/api/admin/stores/{ACME_ID}/users",
            json={"username": "temp", "password": "temp-pass", "pin": "1234"},
            headers=super_admin_headers,
        )
        assert created.status_code == 201
        user = created.json()
        assert user["role"] == "VIEWER"
        assert user["pin"] == "1234"

        updated = await client.patch(
            f"/api/admin/stores/{ACME_ID}/users/{user['id']}",
            json={"role": "STORE_ADMIN", "subscription_expiry": "2027-01-31"},
            headers=super_admin_headers,
        )
        assert updated.json()["role"] == "STORE_ADMIN"
        assert updated.json()["subscription_expiry"] == "2027-01-31"

        deleted = await client.delete(f"/api/admin/stores/{ACME_ID}/users/{user['id']}", headers=super_admin_headers)
        assert deleted.status_code == 204

    @pytest.mark.asyncio
    async def test_password_reset_takes_effect(self, client, super_admin_headers, acme_admin):
        await client.patch(
            f"/api/admin/stores/{ACME_ID}/users/{acme_admin.id}",
            json={"password": "brand-new-pass"},
            headers=super_admin_headers,
        )
        old = await client.post(
            "/api/auth/store-login", json={"store": ACME_ID, "username": "owner", "password": PASSWORD}
        )
        new = await client.post(
            "/api/auth/store-login", json={"store": ACME_ID, "username": "owner", "password": "brand-new-pass"}
        )
        assert old.status_code == 401
        assert new.status_code == 200

    @pytest.mark.asyncio
    async def test_user_of_other_store_is_not_found(self, client, super_admin_headers, acme, beta_admin):
        response = await client.patch(
            f"/api/admin/stores/{ACME_ID}/users/{beta_admin.id}",
            json={"role": "VIEWER"},
            headers=super_admin_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_editor_cannot_delete_users(self, client, editor_admin_headers, acme_admin):
        response = await client.delete(
            f"/api/admin/stores/{ACME_ID}/users/{acme_admin.id}", headers=editor_admin_headers
        )
        assert response.status_code == 403


class TestDeletedStoreUsers:
    @pytest.mark.asyncio
    async def test_deleted_user_is_archived(self, client, super_admin_headers, acme_admin, acme_clerk):
        clerk_id = str(acme_clerk.id)
        deleted = await client.delete(f"/api/admin/stores/{ACME_ID}/users/{clerk_id}", headers=super_admin_headers)
        assert deleted.status_code == 204

        users = await client.get(f"/api/admin/stores/{ACME_ID}/users", headers=super_admin_headers)
        assert [u["username"] for u in users.json()] == ["owner"]

        archive = await client.get("/api/admin/deleted-users", headers=super_admin_headers)
        assert archive.status_code == 200
        [entry] = archive.json()
        assert entry["original_user_id"] == clerk_id
        assert entry["username"] == "clerk"
        assert entry["role"] == "DATA_ENTRY"
        assert entry["store_name"] == "Acme"
        assert entry["deleted_by"] == "admin:root"
        assert entry["purge_at"] > entry["deleted_at"]
        assert "password_hash" not in entry

    @pytest.mark.asyncio
    async def test_restore_brings_back_same_account(self, client, super_admin_headers, acme_clerk):
        clerk_id = str(acme_clerk.id)
        await client.delete(f"/api/admin/stores/{ACME_ID}/users/{clerk_id}", headers=super_admin_headers)
        [entry] = (await client.get("/api/admin/deleted-users", headers=super_admin_headers)).json()

        restored = await client.post(
            f"/api/admin/stores/{ACME_ID}/deleted-users/{entry['id']}/restore", headers=super_admin_headers
        )
        assert restored.status_code == 201
        assert restored.json()["id"] == clerk_id
        assert restored.json()["role"] == "DATA_ENTRY"

        login = await client.post(
            "/api/auth/store-login", json={"store": ACME_ID, "username": "clerk", "password": PASSWORD}
        )
        assert login.status_code == 200
        assert (await client.get("/api/admin/deleted-users", headers=super_admin_headers)).json() == []

        audit = await client.get(
            "/api/admin/audit-logs", params={"action": "user.restored"}, headers=super_admin_headers
        )
        assert audit.json()[0]["target_id"] == clerk_id

    @pytest.mark.asyncio
    async def test_restore_refused_when_username_retaken(self, client, super_admin_headers, acme_clerk):
        await client.delete(f"/api/admin/stores/{ACME_ID}/users/{acme_clerk.id}", headers=super_admin_headers)
        await client.post(
            f"/api/admin/stores/{ACME_ID}/users",
            json={"username": "clerk", "password": "new-clerk-pass"},
            headers=super_admin_headers,
        )
        [entry] = (await client.get("/api/admin/deleted-users", headers=super_admin_headers)).json()

        response = await client.post(
            f"/api/admin/stores/{ACME_ID}/deleted-users/{entry['id']}/restore", headers=super_admin_headers
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_restore_through_other_store_is_not_found(self, client, super_admin_headers, acme_clerk, beta):
        await client.delete(f"/api/admin/stores/{ACME_ID}/users/{acme_clerk.id}", headers=super_admin_headers)
        [entry] = (await client.get("/api/admin/deleted-users", headers=super_admin_headers)).json()

        response = await client.post(
            f"/api/admin/stores/{BETA_ID}/deleted-users/{entry['id']}/restore", headers=super_admin_headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_store_side_delete_is_archived_too(self, client, super_admin_headers, acme_headers, acme_clerk):
        response = await client.delete(f"/api/store/users/{acme_clerk.id}", headers=acme_headers)
        assert response.status_code == 204

        archive = await client.get(
            "/api/admin/deleted-users", params={"store_id": ACME_ID}, headers=super_admin_headers
        )
        assert [(e["username"], e["deleted_by"]) for e in archive.json()] == [("clerk", "store:owner")]

    @pytest.mark.asyncio
    async def test_viewer_lists_but_cannot_restore(
        self, client, super_admin_headers, viewer_admin_headers, acme_clerk
    ):
        await client.delete(f"/api/admin/stores/{ACME_ID}/users/{acme_clerk.id}", headers=super_admin_headers)
        archive = await client.get("/api/admin/deleted-users", headers=viewer_admin_headers)
        assert archive.status_code == 200

        response = await client.post(
            f"/api/admin/stores/{ACME_ID}/deleted-users/{archive.json()[0]['id']}/restore",
            headers=viewer_admin_headers,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_purge_removes_only_expired_entries(
        self, client, async_session, super_admin_headers, acme_admin, acme_clerk, acme_viewer
    ):
        clerk_id = acme_clerk.id
        await client.delete(f"/api/admin/stores/{ACME_ID}/users/{clerk_id}", headers=super_admin_headers)
        await client.delete(f"/api/admin/stores/{ACME_ID}/users/{acme_viewer.id}", headers=super_admin_headers)
        await async_session.execute(
            update(DeletedStoreUser)
            .where(DeletedStoreUser.original_user_id == clerk_id)
            .values(deleted_at=utcnow() - timedelta(days=31))
        )
        await async_session.commit()

        response = await client.post("/api/admin/deleted-users/purge", headers=super_admin_headers)
        assert response.json() == {"purged": 1}

        remaining = (await client.get("/api/admin/deleted-users", headers=super_admin_headers)).json()
        assert [e["username"] for e in remaining] == ["viewer"]


class TestAdministrators:
    @pytest.mark.asyncio
    async def test_super_admin_creates_admin(self, client, super_admin_headers):
        response = await client.post(
            "/api/admin/admins",
            json={"username": "ops", "password": "ops-password", "role": "admin"},
            headers=super_admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["role"] == "ADMIN"

        duplicate = await client.post(
            "/api/admin/admins",
            json={"username": "ops", "password": "ops-password"},
            headers=super_admin_headers,
        )
        assert duplicate.status_code == 409

    @pytest.mark.asyncio
    async def test_editor_cannot_create_admin(self, client, editor_admin_headers):
        response = await client.post(
            "/api/admin/admins",
            json={"username": "ops", "password": "ops-password"},
            headers=editor_admin_headers,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_admins(self, client, super_admin_headers, editor_admin_headers):
        response = await client.get("/api/admin/admins", headers=super_admin_headers)
        assert response.status_code == 200
        assert sorted(a["username"] for a in response.json()) == ["editor", "root"]
        assert all("password_hash" not in a for a in response.json())

        denied = await client.get("/api/admin/admins", headers=editor_admin_headers)
        assert denied.status_code == 403

    @pytest.mark.asyncio
    async def test_update_admin_role_and_password(self, client, async_session, super_admin_headers):
        ops = await create_admin(async_session, "ops", AdminRole.VIEWER)

        response = await client.patch(
            f"/api/admin/admins/{ops.id}",
            json={"role": "ADMIN", "password": "rotated-password", "email": "ops@example.com"},
            headers=super_admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["role"] == "ADMIN"
        assert response.json()["email"] == "ops@example.com"

        login = await client.post("/api/admin/login", json={"username": "ops", "password": "rotated-password"})
        assert login.status_code == 200

        audit = await client.get(
            "/api/admin/audit-logs", params={"action": "admin.updated"}, headers=super_admin_headers
        )
        assert audit.json()[0]["metadata"] == {"fields": ["email", "password", "role"]}

    @pytest.mark.asyncio
    async def test_rename_admin_to_taken_username(self, client, async_session, super_admin_headers):
        ops = await create_admin(async_session, "ops", AdminRole.VIEWER)
        response = await client.patch(
            f"/api/admin/admins/{ops.id}", json={"username": "root"}, headers=super_admin_headers
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_cannot_demote_or_delete_self(self, client, super_admin, super_admin_headers):
        demote = await client.patch(
            f"/api/admin/admins/{super_admin.id}", json={"role": "VIEWER"}, headers=super_admin_headers
        )
        assert demote.status_code == 403

        delete = await client.delete(f"/api/admin/admins/{super_admin.id}", headers=super_admin_headers)
        assert delete.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_admin_revokes_access(self, client, async_session, super_admin_headers):
        ops = await create_admin(async_session, "ops", AdminRole.ADMIN)
        ops_headers = admin_headers(ops)

        response = await client.delete(f"/api/admin/admins/{ops.id}", headers=super_admin_headers)
        assert response.status_code == 204

        me = await client.get("/api/admin/me", headers=ops_headers)
        assert me.status_code == 401

        missing = await client.delete(f"/api/admin/admins/{ops.id}", headers=super_admin_headers)
        assert missing.status_code == 404


class TestAuditLogs:
    @pytest.mark.asyncio
    async def test_mutations_are_audited(self, client, super_admin_headers, acme):
        await client.patch(
            f"/api/admin/stores/{ACME_ID}", json={"store_slug": "acme-market"}, headers=super_admin_headers
        )
        await client.post(f"/api/admin/stores/{ACME_ID}/deactivate", headers=super_admin_headers)

        response = await client.get(
            "/api/admin/audit-logs", params={"store_id": ACME_ID}, headers=super_admin_headers
        )
        actions = [entry["action"] for entry in response.json()]
        assert set(actions) == {"store.slug_changed", "store.updated", "store.deactivated"}

        renamed = await client.get(
            "/api/admin/audit-logs", params={"action": "store.slug_changed"}, headers=super_admin_headers
        )
        entry = renamed.json()[0]
        assert entry["actor"] == "admin:root"
        assert entry["metadata"] == {"old_slug": "acme-shop", "new_slug": "acme-market"}

    @pytest.mark.asyncio
    async def test_audit_metadata_never_holds_passwords(self, client, super_admin_headers, acme_admin):
        await client.patch(
            f"/api/admin/stores/{ACME_ID}/users/{acme_admin.id}",
            json={"password": "brand-new-pass"},
            headers=super_admin_headers,
        )
        response = await client.get(
            "/api/admin/audit-logs", params={"action": "user.updated"}, headers=super_admin_headers
        )
        assert response.json()[0]["metadata"] == {"fields": ["password"]}
        assert "brand-new-pass" not in response.text
