from fastapi.testclient import TestClient

from gifttracker.core.security import create_access_token
from gifttracker.services.access import Principal


def auth_headers(user_id: str, name: str | None = None, email: str | None = None) -> dict[str, str]:
    token = create_access_token(user_id, name=name or user_id.title(), email=email)
    return {"Authorization": f"Bearer {token}"}


def principal(user_id: str, name: str | None = None, email: str | None = None) -> Principal:
    return Principal(id=user_id, name=name or user_id.title(), email=email)


def create_wishlist(client: TestClient, owner: str = "alice", **kwargs) -> dict:
    payload = {"name": "Birthday", "is_collaborative": True, **kwargs}
    res = client.post("/wishlists", json=payload, headers=auth_headers(owner))
    assert res.status_code == 201, res.text
    return res.json()


def add_item(client: TestClient, wishlist_id: str, owner: str = "alice", **kwargs) -> dict:
    payload = {"title": "Headphones", "price": 50, **kwargs}
    res = client.post(f"/wishlists/{wishlist_id}/items", json=payload, headers=auth_headers(owner))
    assert res.status_code == 201, res.text
    return res.json()


def join(client: TestClient, wishlist_id: str, user: str, role: str = "contributor", owner: str = "alice") -> dict:
    """Invite ``user`` with ``role`` and accept on their behalf; returns the collaborator row."""
    res = client.post(
        f"/wishlists/{wishlist_id}/invite",
        json={"email": f"{user}@example.com", "role": role},
        headers=auth_headers(owner),
    )
    assert res.status_code == 201, res.text
    invitation_id = res.json()["id"]
    res = client.put(f"/wishlist-invitations/{invitation_id}/accept", headers=auth_headers(user))
    assert res.status_code == 200, res.text
    collaborators = client.get(f"/wishlists/{wishlist_id}/collaborators", headers=auth_headers(owner)).json()
    return next(c for c in collaborators if c["user_id"] == user)
