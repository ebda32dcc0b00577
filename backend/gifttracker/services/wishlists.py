import logging
from collections import Counter

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from gifttracker.core.audit import AuditAction, audit_wishlist_action
from gifttracker.core.config import settings
from gifttracker.core.errors import CascadeDeleteError
from gifttracker.models.models import (
    ItemStatusEnum,
    RoleEnum,
    Wishlist,
    WishlistActivity,
    WishlistCollaborator,
    WishlistComment,
    WishlistInvitation,
    WishlistItem,
    WishlistShare,
)
from gifttracker.schemas.wishlist import (
    ActivityPublic,
    WishlistCreate,
    WishlistStats,
    WishlistUpdate,
)
from gifttracker.services.access import Principal, load_wishlist, require_read, require_role
from gifttracker.services.base import BaseService

logger = logging.getLogger("gifttracker.wishlists")

_SETTINGS_FIELDS = ("allow_comments", "allow_purchases", "show_prices", "allow_duplicates")


class WishlistStore(BaseService):
    """Aggregate root: wishlists, their settings and the cascade on delete."""

    async def create(self, owner: Principal, data: WishlistCreate) -> Wishlist:
        wishlist = Wishlist(
            owner_id=owner.id,
            name=data.name,
            description=data.description,
            is_public=data.is_public,
            is_collaborative=data.is_collaborative,
            **data.settings.model_dump(),
        )
        self.db.add(wishlist)
        await self.db.flush()
        self.activity.record(wishlist.id, owner, "created", "wishlist", wishlist.id, wishlist.name)
        await self._commit()
        logger.info("Wishlist created id=%s owner_id=%s", wishlist.id, owner.id)
        return wishlist

    async def get(self, wishlist_id: str) -> Wishlist:
        return await load_wishlist(self.db, wishlist_id)

    async def get_detail(
        self, wishlist_id: str, viewer: Principal
    ) -> tuple[Wishlist, RoleEnum | None, list[WishlistItem], list[WishlistCollaborator]]:
        wishlist = await load_wishlist(self.db, wishlist_id)
        role = await require_read(self.db, wishlist, viewer.id)
        items = await self.db.execute(
            select(WishlistItem)
            .where(WishlistItem.wishlist_id == wishlist.id)
            .order_by(WishlistItem.created_at.asc())
        )
        collaborators = await self.db.execute(
            select(WishlistCollaborator)
            .where(WishlistCollaborator.wishlist_id == wishlist.id)
            .order_by(WishlistCollaborator.joined_at.asc())
        )
        return wishlist, role, list(items.scalars().all()), list(collaborators.scalars().all())

    async def list_for_user(self, user_id: str) -> list[Wishlist]:
        result = await self.db.execute(
            select(Wishlist).where(Wishlist.owner_id == user_id).order_by(Wishlist.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_shared_with(self, user_id: str) -> list[Wishlist]:
        result = await self.db.execute(
            select(Wishlist)
            .join(WishlistCollaborator, WishlistCollaborator.wishlist_id == Wishlist.id)
            .where(WishlistCollaborator.user_id == user_id)
            .order_by(Wishlist.created_at.desc())
        )
        return list(result.scalars().all())

    async def update(self, wishlist_id: str, caller: Principal, patch: WishlistUpdate) -> Wishlist:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, caller.id, RoleEnum.ADMIN, "Only the owner or an admin can edit this wishlist"
        )
        changes = patch.model_dump(exclude_unset=True, exclude={"settings"})
        for field, value in changes.items():
            if value is None and field != "description":
                continue
            setattr(wishlist, field, value)
        if patch.settings is not None:
            for field, value in patch.settings.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(wishlist, field, value)
        self.activity.record(wishlist.id, caller, "updated", "wishlist", wishlist.id, wishlist.name)
        await self._commit()
        await self.db.refresh(wishlist)
        return wishlist

    def _cascade_statements(self, wishlist_id: str) -> list:
        item_ids = select(WishlistItem.id).where(WishlistItem.wishlist_id == wishlist_id)
        return [
            delete(WishlistComment).where(WishlistComment.item_id.in_(item_ids)),
            delete(WishlistItem).where(WishlistItem.wishlist_id == wishlist_id),
            delete(WishlistCollaborator).where(WishlistCollaborator.wishlist_id == wishlist_id),
            delete(WishlistInvitation).where(WishlistInvitation.wishlist_id == wishlist_id),
            delete(WishlistShare).where(WishlistShare.wishlist_id == wishlist_id),
            delete(WishlistActivity).where(WishlistActivity.wishlist_id == wishlist_id),
            delete(Wishlist).where(Wishlist.id == wishlist_id),
        ]

    async def delete(self, wishlist_id: str, caller: Principal) -> None:
        async with self.locks.hold(wishlist_id):
            wishlist = await load_wishlist(self.db, wishlist_id)
            await require_role(
                self.db, wishlist, caller.id, RoleEnum.ADMIN, "Only the owner or an admin can delete this wishlist"
            )
            try:
                for statement in self._cascade_statements(wishlist_id):
                    await self.db.execute(statement.execution_options(synchronize_session=False))
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self._rollback()
                logger.critical("Cascade delete aborted wishlist_id=%s error=%s", wishlist_id, exc)
                raise CascadeDeleteError(wishlist_id) from exc
            self.db.expunge_all()
        audit_wishlist_action(AuditAction.WISHLIST_DELETE, wishlist_id, caller.id)
        logger.info("Wishlist deleted id=%s by=%s", wishlist_id, caller.id)

    async def activity_feed(self, wishlist_id: str, viewer: Principal, limit: int | None = None) -> list[WishlistActivity]:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_read(self.db, wishlist, viewer.id)
        return await self.activity.list_recent(wishlist.id, limit)

    async def stats(self, wishlist_id: str, viewer: Principal) -> WishlistStats:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_read(self.db, wishlist, viewer.id)
        result = await self.db.execute(select(WishlistItem).where(WishlistItem.wishlist_id == wishlist.id))
        items = list(result.scalars().all())

        statuses = Counter(item.status for item in items)
        total_value = float(sum(item.price or 0 for item in items))
        categories = Counter(item.category for item in items if item.category)
        recent = await self.activity.list_recent(wishlist.id, settings.stats_recent_activity)

        return WishlistStats(
            total_items=len(items),
            available_items=statuses.get(ItemStatusEnum.AVAILABLE.value, 0),
            reserved_items=statuses.get(ItemStatusEnum.RESERVED.value, 0),
            purchased_items=statuses.get(ItemStatusEnum.PURCHASED.value, 0),
            total_value=round(total_value, 2),
            average_price=round(total_value / len(items), 2) if items else 0.0,
            most_popular_category=categories.most_common(1)[0][0] if categories else "other",
            recent_activity=[ActivityPublic.model_validate(entry) for entry in recent],
        )


def wishlist_settings(wishlist: Wishlist) -> dict[str, bool]:
    return {field: bool(getattr(wishlist, field)) for field in _SETTINGS_FIELDS}
