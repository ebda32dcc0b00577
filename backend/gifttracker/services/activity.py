import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gifttracker.core.config import settings
from gifttracker.models.models import Wishlist, WishlistActivity, WishlistCollaborator
from gifttracker.services.access import Principal

logger = logging.getLogger("gifttracker.activity")


class Notifier(Protocol):
    async def notify(self, entry: WishlistActivity, recipients: set[str]) -> None: ...


class ActivityLog:
    """Append-only event log for a wishlist.

    Entries are staged on the caller's session so they commit atomically with the
    change they describe; ``publish`` hands them to the notifier afterwards.
    """

    def __init__(self, db: AsyncSession, notifier: Notifier | None = None) -> None:
        self.db = db
        self.notifier = notifier
        self._pending: list[WishlistActivity] = []

    def record(
        self,
        wishlist_id: str,
        actor: Principal | str,
        verb: str,
        target_type: str | None = None,
        target_id: str | None = None,
        target_label: str | None = None,
    ) -> WishlistActivity:
        if isinstance(actor, Principal):
            actor_id, actor_name = actor.id, actor.name
        else:
            actor_id, actor_name = actor, None
        entry = WishlistActivity(
            wishlist_id=wishlist_id,
            actor_id=actor_id,
            actor_name=actor_name,
            verb=verb,
            target_type=target_type,
            target_id=target_id,
            target_label=target_label,
        )
        self.db.add(entry)
        self._pending.append(entry)
        return entry

    def discard(self) -> None:
        self._pending.clear()

    async def audience(self, wishlist_id: str) -> set[str]:
        owner_id = await self.db.scalar(select(Wishlist.owner_id).where(Wishlist.id == wishlist_id))
        result = await self.db.execute(
            select(WishlistCollaborator.user_id).where(WishlistCollaborator.wishlist_id == wishlist_id)
        )
        members = {row[0] for row in result.all()}
        if owner_id:
            members.add(owner_id)
        return members

    async def publish(self) -> None:
        pending, self._pending = self._pending, []
        if not self.notifier:
            return
        for entry in pending:
            recipients = await self.audience(entry.wishlist_id)
            recipients.discard(entry.actor_id)
            if not recipients:
                continue
            try:
                await self.notifier.notify(entry, recipients)
            except Exception:
                # delivery is best effort; the entry itself is already committed
                logger.exception("Activity notify failed wishlist_id=%s verb=%s", entry.wishlist_id, entry.verb)

    async def list_recent(self, wishlist_id: str, limit: int | None = None) -> list[WishlistActivity]:
        limit = limit or settings.activity_default_limit
        limit = max(1, min(limit, settings.activity_max_limit))
        result = await self.db.execute(
            select(WishlistActivity)
            .where(WishlistActivity.wishlist_id == wishlist_id)
            .order_by(WishlistActivity.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
