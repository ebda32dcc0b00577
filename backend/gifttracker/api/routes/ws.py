import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from gifttracker.api.deps import DbSessionDep, principal_from_token
from gifttracker.core.errors import NotFound
from gifttracker.services.access import load_wishlist, membership_role
from gifttracker.realtime.manager import manager

router = APIRouter(tags=["ws"])
logger = logging.getLogger("gifttracker.ws")

WS_PING_INTERVAL = 30   # seconds between server-initiated pings
WS_PING_TIMEOUT  = 60   # seconds to wait for pong before closing idle connection


@router.websocket("/ws/wishlists/{wishlist_id}")
async def wishlist_activity_ws(
    websocket: WebSocket,
    wishlist_id: str,
    db: DbSessionDep,
) -> None:
    await websocket.accept()

    # ── Auth ──────────────────────────────────────────────────────────────
    token = None
    auth_header = websocket.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.removeprefix("Bearer ").strip()
    elif websocket.query_params.get("token"):
        token = websocket.query_params.get("token")
    elif "access_token" in websocket.cookies:
        token = websocket.cookies.get("access_token")

    viewer = principal_from_token(token) if token else None
    if viewer is None:
        logger.warning("WS auth required wishlist_id=%s", wishlist_id)
        await websocket.close(code=1008)
        return

    # ── Membership check ─────────────────────────────────────────────────
    try:
        wishlist = await load_wishlist(db, wishlist_id)
    except NotFound:
        logger.warning("WS wishlist not found wishlist_id=%s", wishlist_id)
        await websocket.close(code=1008)
        return
    role = await membership_role(db, wishlist, viewer.id)
    if role is None:
        logger.warning("WS access denied wishlist_id=%s user_id=%s", wishlist_id, viewer.id)
        await websocket.close(code=1008)
        return

    await manager.connect(wishlist_id, websocket, viewer.id)
    await websocket.send_json({"type": "subscribed", "wishlist_id": wishlist_id, "role": role.value})

    # ── Message loop with idle-timeout ────────────────────────────────────
    try:
        while True:
            try:
                await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=WS_PING_INTERVAL,
                )
            except asyncio.TimeoutError:
                try:
                    await asyncio.wait_for(
                        websocket.send_text('{"type":"ping"}'),
                        timeout=WS_PING_TIMEOUT - WS_PING_INTERVAL,
                    )
                except Exception:
                    logger.info("WS idle timeout, closing wishlist_id=%s", wishlist_id)
                    break
    except WebSocketDisconnect:
        logger.info("WS disconnected wishlist_id=%s", wishlist_id)
    finally:
        manager.disconnect(wishlist_id, websocket)
