"""
API tests for item comments and their reply threads.
"""
from fastapi.testclient import TestClient

from helpers import add_item, auth_headers, create_wishlist, join


def _comment(client: TestClient, item_id: str, message: str, author: str = "alice", parent_id: str | None = None):
    payload = {"message": message}
    if parent_id:
        payload["parent_id"] = parent_id
    return client.post(f"/wishlist-items/{item_id}/comments", json=payload, headers=auth_headers(author))


def _comments(client: TestClient, item_id: str, viewer: str = "alice") -> list[dict]:
    res = client.get(f"/wishlist-items/{item_id}/comments", headers=auth_headers(viewer))
    assert res.status_code == 200, res.text
    return res.json()


def test_add_and_list_comments(client: TestClient):
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    join(client, wishlist["id"], "bob", role="viewer")

    res = _comment(client, item["id"], "  Which colour?  ", author="bob")

    assert res.status_code == 201
    data = res.json()
    assert data["message"] == "Which colour?"
    assert data["author_id"] == "bob"
    assert data["author_name"] == "Bob"
    assert data["parent_id"] is None
    assert [c["id"] for c in _comments(client, item["id"])] == [data["id"]]


def test_replies_attach_to_thread_root(client: TestClient):
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    root = _comment(client, item["id"], "Root").json()
    reply = _comment(client, item["id"], "Reply", parent_id=root["id"]).json()
    nested = _comment(client, item["id"], "Reply to reply", parent_id=reply["id"]).json()

    assert reply["parent_id"] == root["id"]
    assert nested["parent_id"] == root["id"]


def test_parent_must_belong_to_item(client: TestClient):
    wishlist = create_wishlist(client)
    first = add_item(client, wishlist["id"], title="First")
    second = add_item(client, wishlist["id"], title="Second")
    root = _comment(client, first["id"], "Root").json()

    res = _comment(client, second["id"], "Misplaced", parent_id=root["id"])
    assert res.status_code == 404


def test_blank_message_rejected(client: TestClient):
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    assert _comment(client, item["id"], "   ").status_code == 400


def test_comments_disabled(client: TestClient):
    wishlist = create_wishlist(client, settings={"allow_comments": False})
    item = add_item(client, wishlist["id"])
    res = _comment(client, item["id"], "Hello")
    assert res.status_code == 403


def test_strangers_cannot_comment_on_private(client: TestClient):
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    assert _comment(client, item["id"], "Hi", author="mallory").status_code == 403
    res = client.get(f"/wishlist-items/{item['id']}/comments", headers=auth_headers("mallory"))
    assert res.status_code == 403


def test_public_wishlist_accepts_outside_comments(client: TestClient):
    wishlist = create_wishlist(client, is_public=True)
    item = add_item(client, wishlist["id"])
    assert _comment(client, item["id"], "Lovely", author="mallory").status_code == 201


def test_comment_on_missing_item(client: TestClient):
    assert _comment(client, "nope", "Hello").status_code == 404


def test_author_deletes_comment_and_replies(client: TestClient):
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    join(client, wishlist["id"], "bob")
    root = _comment(client, item["id"], "Root", author="bob").json()
    _comment(client, item["id"], "Reply", parent_id=root["id"])
    other = _comment(client, item["id"], "Separate").json()

    res = client.delete(f"/wishlist-items/{item['id']}/comments/{root['id']}", headers=auth_headers("bob"))

    assert res.status_code == 204
    assert [c["id"] for c in _comments(client, item["id"])] == [other["id"]]


def test_only_author_deletes(client: TestClient):
    wishlist = create_wishlist(client)
    item = add_item(client, wishlist["id"])
    join(client, wishlist["id"], "bob")
    comment = _comment(client, item["id"], "Mine", author="bob").json()

    res = client.delete(f"/wishlist-items/{item['id']}/comments/{comment['id']}", headers=auth_headers("alice"))
    assert res.status_code == 403

    res = client.delete(f"/wishlist-items/{item['id']}/comments/missing", headers=auth_headers("bob"))
    assert res.status_code == 404
