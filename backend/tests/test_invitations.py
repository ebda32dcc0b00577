"""
API tests for invitations: issue, accept, decline and expiry.
"""
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import text

from helpers import auth_headers, create_wishlist, join


def _invite(client: TestClient, wishlist_id: str, email: str = "bob@example.com", role: str = "contributor", inviter: str = "alice"):
    return client.post(
        f"/wishlists/{wishlist_id}/invite",
        json={"email": email, "role": role},
        headers=auth_headers(inviter),
    )


def _accept(client: TestClient, invitation_id: str, user: str = "bob"):
    return client.put(f"/wishlist-invitations/{invitation_id}/accept", headers=auth_headers(user))


def _decline(client: TestClient, invitation_id: str, user: str = "bob"):
    return client.put(f"/wishlist-invitations/{invitation_id}/decline", headers=auth_headers(user))


def _backdate(sync_engine, invitation_id: str) -> None:
    with sync_engine.begin() as conn:
        conn.execute(
            text("UPDATE wishlist_invitations SET expires_at = :past WHERE id = :id"),
            {"past": "2000-01-01 00:00:00.000000", "id": invitation_id},
        )


def _collaborator_rows(sync_engine, wishlist_id: str) -> int:
    with sync_engine.connect() as conn:
        return conn.execute(
            text("SELECT COUNT(*) FROM wishlist_collaborators WHERE wishlist_id = :wid"), {"wid": wishlist_id}
        ).scalar_one()


class TestInvite:
    def test_invite_is_pending_for_seven_days(self, client: TestClient):
        wishlist = create_wishlist(client)
        res = _invite(client, wishlist["id"], email="Bob@Example.com")

        assert res.status_code == 201
        data = res.json()
        assert data["status"] == "pending"
        assert data["email"] == "bob@example.com"
        assert data["role"] == "contributor"
        assert data["invited_by"] == "alice"
        created = datetime.fromisoformat(data["created_at"])
        expires = datetime.fromisoformat(data["expires_at"])
        assert expires - created == timedelta(days=7)

    def test_default_role_is_viewer(self, client: TestClient):
        wishlist = create_wishlist(client)
        res = client.post(
            f"/wishlists/{wishlist['id']}/invite", json={"email": "bob@example.com"}, headers=auth_headers("alice")
        )
        assert res.json()["role"] == "viewer"

    def test_admin_can_invite(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "dana", role="admin")
        assert _invite(client, wishlist["id"], inviter="dana").status_code == 201

    def test_contributor_cannot_invite(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "dana", role="contributor")
        assert _invite(client, wishlist["id"], inviter="dana").status_code == 403

    def test_owner_role_rejected(self, client: TestClient):
        wishlist = create_wishlist(client)
        assert _invite(client, wishlist["id"], role="owner").status_code == 400

    def test_invalid_email_rejected(self, client: TestClient):
        wishlist = create_wishlist(client)
        assert _invite(client, wishlist["id"], email="not-an-email").status_code == 400

    def test_missing_wishlist(self, client: TestClient):
        assert _invite(client, "nope").status_code == 404


class TestAccept:
    def test_accept_creates_membership(self, client: TestClient):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"], role="admin").json()

        res = _accept(client, invitation["id"])

        assert res.status_code == 200
        data = res.json()
        assert data["status"] == "accepted"
        assert data["responded_at"] is not None
        detail = client.get(f"/wishlists/{wishlist['id']}", headers=auth_headers("bob")).json()
        assert detail["role"] == "admin"

    def test_double_accept_conflicts(self, client: TestClient, sync_engine):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()

        assert _accept(client, invitation["id"]).status_code == 200
        res = _accept(client, invitation["id"])

        assert res.status_code == 409
        assert _collaborator_rows(sync_engine, wishlist["id"]) == 1

    def test_expired_invitation(self, client: TestClient, sync_engine):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()
        _backdate(sync_engine, invitation["id"])

        res = _accept(client, invitation["id"])
        assert res.status_code == 410
        assert res.json()["error"] == "expired"
        assert _collaborator_rows(sync_engine, wishlist["id"]) == 0

        # the expiry is now stored, so a retry fails the same way
        assert _accept(client, invitation["id"]).status_code == 410
        with sync_engine.connect() as conn:
            stored = conn.execute(
                text("SELECT status FROM wishlist_invitations WHERE id = :id"), {"id": invitation["id"]}
            ).scalar_one()
        assert stored == "expired"

    def test_listing_reports_lapsed_invitations_as_expired(self, client: TestClient, sync_engine):
        wishlist = create_wishlist(client)
        lapsed = _invite(client, wishlist["id"], email="old@example.com").json()
        fresh = _invite(client, wishlist["id"], email="new@example.com").json()
        _backdate(sync_engine, lapsed["id"])

        res = client.get(f"/wishlists/{wishlist['id']}/invitations", headers=auth_headers("alice"))

        assert res.status_code == 200
        statuses = {i["id"]: i["status"] for i in res.json()}
        assert statuses == {lapsed["id"]: "expired", fresh["id"]: "pending"}

    def test_owner_cannot_accept(self, client: TestClient):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()
        assert _accept(client, invitation["id"], user="alice").status_code == 409

    def test_existing_member_cannot_accept_again(self, client: TestClient, sync_engine):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "bob", role="viewer")
        invitation = _invite(client, wishlist["id"], role="admin").json()

        assert _accept(client, invitation["id"]).status_code == 409
        assert _collaborator_rows(sync_engine, wishlist["id"]) == 1
        listed = client.get(f"/wishlists/{wishlist['id']}/invitations", headers=auth_headers("alice")).json()
        assert {i["id"]: i["status"] for i in listed}[invitation["id"]] == "pending"

    def test_unknown_invitation(self, client: TestClient):
        assert _accept(client, "nope").status_code == 404
        assert _decline(client, "nope").status_code == 404


class TestDecline:
    def test_decline_is_idempotent(self, client: TestClient):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()

        first = _decline(client, invitation["id"])
        second = _decline(client, invitation["id"])

        assert first.status_code == 200
        assert first.json()["status"] == "declined"
        assert second.status_code == 200
        assert second.json()["status"] == "declined"
        assert second.json()["responded_at"] == first.json()["responded_at"]

    def test_accept_after_decline_conflicts(self, client: TestClient):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()
        _decline(client, invitation["id"])
        assert _accept(client, invitation["id"]).status_code == 409

    def test_decline_after_accept_keeps_acceptance(self, client: TestClient):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()
        _accept(client, invitation["id"])

        res = _decline(client, invitation["id"])
        assert res.status_code == 200
        assert res.json()["status"] == "accepted"

    def test_decline_after_expiry_stays_expired(self, client: TestClient, sync_engine):
        wishlist = create_wishlist(client)
        invitation = _invite(client, wishlist["id"]).json()
        _backdate(sync_engine, invitation["id"])

        res = _decline(client, invitation["id"])

        assert res.status_code == 200
        assert res.json()["status"] == "expired"
        assert res.json()["responded_at"] is None
        with sync_engine.connect() as conn:
            stored = conn.execute(
                text("SELECT status FROM wishlist_invitations WHERE id = :id"), {"id": invitation["id"]}
            ).scalar_one()
        assert stored == "expired"
        assert _accept(client, invitation["id"]).status_code == 410


def test_listing_requires_admin(client: TestClient):
    wishlist = create_wishlist(client)
    join(client, wishlist["id"], "bob", role="contributor")
    res = client.get(f"/wishlists/{wishlist['id']}/invitations", headers=auth_headers("bob"))
    assert res.status_code == 403


def test_invitation_expiry_is_in_the_future(client: TestClient):
    wishlist = create_wishlist(client)
    data = _invite(client, wishlist["id"]).json()
    expires = datetime.fromisoformat(data["expires_at"])
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    assert expires > datetime.now(timezone.utc) + timedelta(days=6)
