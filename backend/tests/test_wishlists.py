"""
API tests for wishlists: CRUD, read access and the cascading delete.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from gifttracker.core.errors import CascadeDeleteError, NotFound
from gifttracker.schemas.wishlist import WishlistCreate
from gifttracker.services.wishlists import WishlistStore
from helpers import add_item, auth_headers, create_wishlist, join, principal


class TestWishlistCreate:
    def test_create_wishlist_defaults(self, client: TestClient):
        res = client.post("/wishlists", json={"name": "  Birthday  "}, headers=auth_headers("alice"))

        assert res.status_code == 201
        data = res.json()
        assert data["name"] == "Birthday"
        assert data["owner_id"] == "alice"
        assert data["is_public"] is False
        assert data["settings"] == {
            "allow_comments": True,
            "allow_purchases": True,
            "show_prices": True,
            "allow_duplicates": False,
        }

    def test_create_wishlist_with_settings(self, client: TestClient):
        data = create_wishlist(
            client,
            description="For June",
            is_public=True,
            settings={"show_prices": False, "allow_duplicates": True},
        )
        assert data["description"] == "For June"
        assert data["is_public"] is True
        assert data["settings"]["show_prices"] is False
        assert data["settings"]["allow_duplicates"] is True

    def test_create_wishlist_unauthenticated(self, client: TestClient):
        res = client.post("/wishlists", json={"name": "Birthday"})
        assert res.status_code == 401


class TestWishlistRead:
    def test_owner_gets_items_and_collaborators(self, client: TestClient):
        wishlist = create_wishlist(client)
        add_item(client, wishlist["id"])
        join(client, wishlist["id"], "bob")

        res = client.get(f"/wishlists/{wishlist['id']}", headers=auth_headers("alice"))

        assert res.status_code == 200
        data = res.json()
        assert data["role"] == "owner"
        assert [i["title"] for i in data["items"]] == ["Headphones"]
        assert [c["user_id"] for c in data["collaborators"]] == ["bob"]

    def test_collaborator_sees_own_role(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "bob", role="viewer")

        res = client.get(f"/wishlists/{wishlist['id']}", headers=auth_headers("bob"))
        assert res.json()["role"] == "viewer"

    def test_missing_wishlist_is_not_found(self, client: TestClient):
        res = client.get("/wishlists/does-not-exist", headers=auth_headers("alice"))
        assert res.status_code == 404
        assert res.json() == {"detail": "Wishlist not found", "error": "not_found"}

    def test_private_wishlist_hidden_from_strangers(self, client: TestClient):
        wishlist = create_wishlist(client)
        res = client.get(f"/wishlists/{wishlist['id']}", headers=auth_headers("mallory"))
        assert res.status_code == 403

    def test_public_wishlist_readable_by_any_user(self, client: TestClient):
        wishlist = create_wishlist(client, is_public=True)
        res = client.get(f"/wishlists/{wishlist['id']}", headers=auth_headers("mallory"))
        assert res.status_code == 200
        assert res.json()["role"] is None

    def test_list_own_and_shared(self, client: TestClient):
        mine = create_wishlist(client, name="Mine")
        theirs = create_wishlist(client, owner="carol", name="Carol's")
        join(client, theirs["id"], "alice", owner="carol")

        own = client.get("/wishlists", headers=auth_headers("alice")).json()
        shared = client.get("/wishlists/shared-with-me", headers=auth_headers("alice")).json()

        assert [w["id"] for w in own] == [mine["id"]]
        assert [w["id"] for w in shared] == [theirs["id"]]


class TestWishlistUpdate:
    def test_owner_updates_fields_and_settings(self, client: TestClient):
        wishlist = create_wishlist(client)
        res = client.put(
            f"/wishlists/{wishlist['id']}",
            json={"name": "Renamed", "is_public": True, "settings": {"allow_comments": False}},
            headers=auth_headers("alice"),
        )

        assert res.status_code == 200
        data = res.json()
        assert data["name"] == "Renamed"
        assert data["is_public"] is True
        assert data["settings"]["allow_comments"] is False
        assert data["settings"]["allow_purchases"] is True

    def test_admin_can_update(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "bob", role="admin")
        res = client.put(f"/wishlists/{wishlist['id']}", json={"name": "By admin"}, headers=auth_headers("bob"))
        assert res.status_code == 200

    def test_contributor_cannot_update(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "bob", role="contributor")
        res = client.put(f"/wishlists/{wishlist['id']}", json={"name": "Nope"}, headers=auth_headers("bob"))
        assert res.status_code == 403
        assert res.json()["error"] == "forbidden"

    def test_blank_name_rejected(self, client: TestClient):
        wishlist = create_wishlist(client)
        res = client.put(f"/wishlists/{wishlist['id']}", json={"name": "  "}, headers=auth_headers("alice"))
        assert res.status_code == 400


def _rows_for(sync_engine, wishlist_id: str, item_id: str) -> dict[str, int]:
    queries = {
        "wishlists": "SELECT COUNT(*) FROM wishlists WHERE id = :wid",
        "items": "SELECT COUNT(*) FROM wishlist_items WHERE wishlist_id = :wid",
        "comments": "SELECT COUNT(*) FROM wishlist_comments WHERE item_id = :iid",
        "collaborators": "SELECT COUNT(*) FROM wishlist_collaborators WHERE wishlist_id = :wid",
        "invitations": "SELECT COUNT(*) FROM wishlist_invitations WHERE wishlist_id = :wid",
        "shares": "SELECT COUNT(*) FROM wishlist_shares WHERE wishlist_id = :wid",
        "activity": "SELECT COUNT(*) FROM wishlist_activity WHERE wishlist_id = :wid",
    }
    with sync_engine.connect() as conn:
        return {
            name: conn.execute(text(sql), {"wid": wishlist_id, "iid": item_id}).scalar_one()
            for name, sql in queries.items()
        }


def _populate(client: TestClient) -> tuple[dict, dict, dict]:
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    join(client, wishlist["id"], "bob", role="admin")
    client.post(
        f"/wishlists/{wishlist['id']}/invite",
        json={"email": "carol@example.com"},
        headers=auth_headers("alice"),
    )
    client.post(f"/wishlist-items/{item['id']}/comments", json={"message": "Nice"}, headers=auth_headers("bob"))
    share = client.post(f"/wishlists/{wishlist['id']}/share", json={}, headers=auth_headers("alice")).json()
    return wishlist, item, share


class TestWishlistDelete:
    def test_delete_cascades_everything(self, client: TestClient, sync_engine):
        wishlist, item, share = _populate(client)
        before = _rows_for(sync_engine, wishlist["id"], item["id"])
        assert all(count > 0 for count in before.values()), before

        res = client.delete(f"/wishlists/{wishlist['id']}", headers=auth_headers("alice"))

        assert res.status_code == 204
        assert set(_rows_for(sync_engine, wishlist["id"], item["id"]).values()) == {0}
        assert client.get(f"/wishlists/{wishlist['id']}", headers=auth_headers("alice")).status_code == 404
        assert client.get(f"/wishlists/public/{share['share_code']}").status_code == 404
        assert client.get("/wishlists/shared-with-me", headers=auth_headers("bob")).json() == []

    def test_delete_twice_is_not_found(self, client: TestClient):
        wishlist = create_wishlist(client)
        assert client.delete(f"/wishlists/{wishlist['id']}", headers=auth_headers("alice")).status_code == 204
        res = client.delete(f"/wishlists/{wishlist['id']}", headers=auth_headers("alice"))
        assert res.status_code == 404

    def test_admin_can_delete(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "bob", role="admin")
        assert client.delete(f"/wishlists/{wishlist['id']}", headers=auth_headers("bob")).status_code == 204

    def test_contributor_cannot_delete(self, client: TestClient):
        wishlist = create_wishlist(client)
        join(client, wishlist["id"], "bob", role="contributor")
        res = client.delete(f"/wishlists/{wishlist['id']}", headers=auth_headers("bob"))
        assert res.status_code == 403

    def test_failed_cascade_leaves_nothing_deleted(self, client: TestClient, sync_engine, monkeypatch):
        wishlist, item, _ = _populate(client)
        before = _rows_for(sync_engine, wishlist["id"], item["id"])
        original = WishlistStore._cascade_statements

        def broken(self, wishlist_id):
            statements = original(self, wishlist_id)
            # fail after most of the cascade has already run
            return statements[:-1] + [text("DELETE FROM no_such_table"), statements[-1]]

        monkeypatch.setattr(WishlistStore, "_cascade_statements", broken)
        res = client.delete(f"/wishlists/{wishlist['id']}", headers=auth_headers("alice"))

        assert res.status_code == 500
        assert res.json()["error"] == "cascade_failed"
        assert _rows_for(sync_engine, wishlist["id"], item["id"]) == before


@pytest.mark.anyio
async def test_store_cascade_failure_raises_and_rolls_back(session_factory, monkeypatch):
    owner = principal("alice")
    async with session_factory() as db:
        store = WishlistStore(db)
        wishlist = await store.create(owner, WishlistCreate(name="Trip"))
        wishlist_id = wishlist.id

        original = store._cascade_statements
        monkeypatch.setattr(
            store, "_cascade_statements", lambda wid: original(wid)[:3] + [text("DELETE FROM no_such_table")]
        )
        with pytest.raises(CascadeDeleteError) as excinfo:
            await store.delete(wishlist_id, owner)
        assert excinfo.value.wishlist_id == wishlist_id

    async with session_factory() as db:
        store = WishlistStore(db)
        assert (await store.get(wishlist_id)).name == "Trip"
        await store.delete(wishlist_id, owner)
        with pytest.raises(NotFound):
            await store.get(wishlist_id)
