import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

from gifttracker.models.models import WishlistActivity

logger = logging.getLogger("gifttracker.ws")


def activity_payload(entry: WishlistActivity) -> dict[str, Any]:
    return {
        "type": "activity",
        "activity": {
            "id": entry.id,
            "wishlist_id": entry.wishlist_id,
            "actor_id": entry.actor_id,
            "actor_name": entry.actor_name,
            "verb": entry.verb,
            "target_type": entry.target_type,
            "target_id": entry.target_id,
            "target_label": entry.target_label,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
        },
    }


class WishlistConnectionManager:
    """Fans committed activity entries out to subscribed wishlist members."""

    def __init__(self) -> None:
        self._connections: dict[str, list[tuple[WebSocket, str]]] = defaultdict(list)

    async def connect(self, wishlist_id: str, websocket: WebSocket, user_id: str) -> None:
        self._connections[wishlist_id].append((websocket, user_id))
        logger.info(
            "WS connect wishlist_id=%s user_id=%s total=%s",
            wishlist_id,
            user_id,
            len(self._connections[wishlist_id]),
        )

    def disconnect(self, wishlist_id: str, websocket: WebSocket) -> None:
        if wishlist_id not in self._connections:
            return
        self._connections[wishlist_id] = [
            (ws, uid) for (ws, uid) in self._connections[wishlist_id] if ws is not websocket
        ]
        if not self._connections[wishlist_id]:
            self._connections.pop(wishlist_id, None)
        else:
            logger.info("WS disconnect wishlist_id=%s total=%s", wishlist_id, len(self._connections[wishlist_id]))

    def subscribers(self, wishlist_id: str) -> list[str]:
        return [uid for (_, uid) in self._connections.get(wishlist_id, [])]

    async def notify(self, entry: WishlistActivity, recipients: set[str]) -> None:
        wishlist_id = entry.wishlist_id
        if wishlist_id not in self._connections:
            return

        payload = activity_payload(entry)
        to_remove: list[WebSocket] = []
        for websocket, user_id in list(self._connections[wishlist_id]):
            if user_id not in recipients:
                continue
            try:
                await websocket.send_json(payload)
            except Exception:
                logger.exception("WS send failed wishlist_id=%s user_id=%s", wishlist_id, user_id)
                to_remove.append(websocket)

        if to_remove:
            self._connections[wishlist_id] = [
                (ws, uid) for (ws, uid) in self._connections[wishlist_id] if ws not in to_remove
            ]
            if not self._connections[wishlist_id]:
                self._connections.pop(wishlist_id, None)
            else:
                logger.info("WS pruned wishlist_id=%s total=%s", wishlist_id, len(self._connections[wishlist_id]))


manager = WishlistConnectionManager()
