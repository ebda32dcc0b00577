import logging

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from gifttracker.core.errors import Conflict, Forbidden, NotFound
from gifttracker.models.models import (
    ItemStatusEnum,
    RoleEnum,
    Wishlist,
    WishlistComment,
    WishlistItem,
)
from gifttracker.schemas.wishlist import ItemCreate, ItemUpdate
from gifttracker.services.access import (
    Principal,
    ShareGrant,
    load_wishlist,
    membership_role,
    require_read,
    require_role,
)
from gifttracker.services.base import BaseService
from gifttracker.utils import utcnow

logger = logging.getLogger("gifttracker.items")


class ItemLedger(BaseService):
    """Items of a wishlist and their available -> reserved -> purchased lifecycle.

    Claim transitions are single conditional UPDATEs; a statement that matches no
    row lost the race and surfaces as ``Conflict``.
    """

    async def _load_item(self, wishlist: Wishlist, item_id: str) -> WishlistItem:
        item = await self.db.scalar(
            select(WishlistItem).where(WishlistItem.id == item_id, WishlistItem.wishlist_id == wishlist.id)
        )
        if item is None:
            raise NotFound("Item not found")
        return item

    async def _ensure_unique_title(self, wishlist: Wishlist, title: str, exclude_id: str | None = None) -> None:
        if wishlist.allow_duplicates:
            return
        stmt = select(WishlistItem.id).where(
            WishlistItem.wishlist_id == wishlist.id,
            func.lower(WishlistItem.title) == title.lower(),
        )
        if exclude_id:
            stmt = stmt.where(WishlistItem.id != exclude_id)
        if await self.db.scalar(stmt.limit(1)) is not None:
            raise Conflict(f'An item titled "{title}" is already on this wishlist')

    async def _claimant(
        self,
        wishlist: Wishlist,
        principal: Principal | None,
        grant: ShareGrant | None,
    ) -> str:
        if principal is not None:
            role = await membership_role(self.db, wishlist, principal.id)
            if role is not None:
                return principal.id
        if grant is not None and grant.wishlist_id == wishlist.id:
            if not wishlist.allow_purchases:
                raise Forbidden("Reservations are disabled for shared links on this wishlist")
            return principal.id if principal is not None else grant.claimant_id
        raise Forbidden("Only collaborators or share link holders can claim items")

    async def list_items(self, wishlist_id: str, viewer: Principal) -> list[WishlistItem]:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_read(self.db, wishlist, viewer.id)
        result = await self.db.execute(
            select(WishlistItem)
            .where(WishlistItem.wishlist_id == wishlist.id)
            .order_by(WishlistItem.created_at.asc())
        )
        return list(result.scalars().all())

    async def add_item(self, wishlist_id: str, caller: Principal, data: ItemCreate) -> WishlistItem:
        async with self.locks.hold(wishlist_id):
            wishlist = await load_wishlist(self.db, wishlist_id)
            await require_role(
                self.db, wishlist, caller.id, RoleEnum.CONTRIBUTOR, "Contributor role or above is required to add items"
            )
            await self._ensure_unique_title(wishlist, data.title)
            item = WishlistItem(
                wishlist_id=wishlist.id,
                title=data.title,
                description=data.description,
                price=data.price,
                currency=data.currency,
                category=data.category,
                priority=data.priority.value,
                image_url=data.image_url,
                purchase_url=data.purchase_url,
                store=data.store,
                tags=list(data.tags),
                notes=data.notes,
            )
            self.db.add(item)
            try:
                await self.db.flush()
            except IntegrityError as exc:
                await self._rollback()
                raise NotFound("Wishlist not found") from exc
            self.activity.record(wishlist.id, caller, "added", "item", item.id, item.title)
            await self._commit()
        await self.db.refresh(item)
        logger.info("Item added wishlist_id=%s item_id=%s", wishlist_id, item.id)
        return item

    async def update_item(self, wishlist_id: str, item_id: str, caller: Principal, patch: ItemUpdate) -> WishlistItem:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, caller.id, RoleEnum.CONTRIBUTOR, "Contributor role or above is required to edit items"
        )
        item = await self._load_item(wishlist, item_id)
        changes = patch.model_dump(exclude_unset=True)
        if changes.get("title") and changes["title"].lower() != item.title.lower():
            await self._ensure_unique_title(wishlist, changes["title"], exclude_id=item.id)
        if changes.get("priority") is not None:
            changes["priority"] = changes["priority"].value
        for field, value in changes.items():
            if value is None and field in ("title", "price", "currency", "priority", "tags"):
                continue
            setattr(item, field, value)
        self.activity.record(wishlist.id, caller, "item_updated", "item", item.id, item.title)
        await self._commit()
        await self.db.refresh(item)
        return item

    async def delete_item(self, wishlist_id: str, item_id: str, caller: Principal) -> None:
        async with self.locks.hold(wishlist_id):
            wishlist = await load_wishlist(self.db, wishlist_id)
            await require_role(
                self.db, wishlist, caller.id, RoleEnum.CONTRIBUTOR, "Contributor role or above is required to remove items"
            )
            item = await self._load_item(wishlist, item_id)
            title = item.title
            await self.db.execute(delete(WishlistComment).where(WishlistComment.item_id == item.id))
            await self.db.delete(item)
            self.activity.record(wishlist.id, caller, "removed", "item", item_id, title)
            await self._commit()
        logger.info("Item removed wishlist_id=%s item_id=%s", wishlist_id, item_id)

    async def reserve(
        self,
        wishlist_id: str,
        item_id: str,
        principal: Principal | None,
        grant: ShareGrant | None = None,
    ) -> WishlistItem:
        wishlist = await load_wishlist(self.db, wishlist_id)
        item = await self._load_item(wishlist, item_id)
        if item.status != ItemStatusEnum.AVAILABLE.value:
            raise Conflict(f"Item is already {item.status}")
        claimant = await self._claimant(wishlist, principal, grant)

        now = utcnow()
        result = await self.db.execute(
            update(WishlistItem)
            .where(WishlistItem.id == item.id, WishlistItem.status == ItemStatusEnum.AVAILABLE.value)
            .values(status=ItemStatusEnum.RESERVED.value, reserved_by=claimant, reserved_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._rollback()
            raise Conflict("Item was claimed by someone else")
        self.activity.record(wishlist.id, principal or claimant, "reserved", "item", item.id, item.title)
        await self._commit()
        await self.db.refresh(item)
        logger.info("Item reserved item_id=%s by=%s", item.id, claimant)
        return item

    async def purchase(
        self,
        wishlist_id: str,
        item_id: str,
        principal: Principal | None,
        grant: ShareGrant | None = None,
    ) -> WishlistItem:
        wishlist = await load_wishlist(self.db, wishlist_id)
        item = await self._load_item(wishlist, item_id)
        if item.status == ItemStatusEnum.PURCHASED.value:
            raise Conflict("Item is already purchased")
        claimant = await self._claimant(wishlist, principal, grant)
        if item.status == ItemStatusEnum.RESERVED.value and item.reserved_by != claimant:
            raise Conflict("Item is reserved by someone else")

        now = utcnow()
        result = await self.db.execute(
            update(WishlistItem)
            .where(
                WishlistItem.id == item.id,
                or_(
                    WishlistItem.status == ItemStatusEnum.AVAILABLE.value,
                    and_(
                        WishlistItem.status == ItemStatusEnum.RESERVED.value,
                        WishlistItem.reserved_by == claimant,
                    ),
                ),
            )
            .values(
                status=ItemStatusEnum.PURCHASED.value,
                reserved_by=None,
                reserved_at=None,
                purchased_by=claimant,
                purchased_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._rollback()
            raise Conflict("Item was claimed by someone else")
        self.activity.record(wishlist.id, principal or claimant, "purchased", "item", item.id, item.title)
        await self._commit()
        await self.db.refresh(item)
        logger.info("Item purchased item_id=%s by=%s", item.id, claimant)
        return item

    async def release(
        self,
        wishlist_id: str,
        item_id: str,
        principal: Principal | None,
        grant: ShareGrant | None = None,
    ) -> WishlistItem:
        wishlist = await load_wishlist(self.db, wishlist_id)
        item = await self._load_item(wishlist, item_id)
        if item.status != ItemStatusEnum.RESERVED.value:
            raise Conflict("Only reserved items can be released")
        holder = item.reserved_by

        caller_ids = set()
        if principal is not None:
            caller_ids.add(principal.id)
        if grant is not None and grant.wishlist_id == wishlist.id:
            caller_ids.add(grant.claimant_id)
        if holder not in caller_ids:
            role = await membership_role(self.db, wishlist, principal.id if principal else None)
            if role is None or role < RoleEnum.ADMIN:
                raise Forbidden("Only the reserver, the owner or an admin can release this item")

        result = await self.db.execute(
            update(WishlistItem)
            .where(
                WishlistItem.id == item.id,
                WishlistItem.status == ItemStatusEnum.RESERVED.value,
                WishlistItem.reserved_by == holder,
            )
            .values(status=ItemStatusEnum.AVAILABLE.value, reserved_by=None, reserved_at=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._rollback()
            raise Conflict("Item changed while releasing it")
        self.activity.record(
            wishlist.id, principal or grant.claimant_id, "released", "item", item.id, item.title
        )
        await self._commit()
        await self.db.refresh(item)
        return item
