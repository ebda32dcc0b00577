"""Tokenized read access to a wishlist, independent of collaborator membership."""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from gifttracker.core.audit import AuditAction, audit_share_password_failed, audit_wishlist_action
from gifttracker.core.config import settings
from gifttracker.core.errors import Conflict, Expired, NotFound, Unauthorized, ValidationError
from gifttracker.core.security import generate_share_code, get_password_hash, verify_password
from gifttracker.models.models import RoleEnum, ShareTypeEnum, WishlistItem, WishlistShare
from gifttracker.schemas.share import SharedItemPublic, SharedWishlistPublic
from gifttracker.services.access import Principal, ShareGrant, load_wishlist, require_role
from gifttracker.services.activity import ActivityLog
from gifttracker.services.base import BaseService
from gifttracker.services.locks import WishlistLocks
from gifttracker.services.wishlists import wishlist_settings
from gifttracker.utils import is_past

logger = logging.getLogger("gifttracker.shares")


class ShareTokenService(BaseService):
    def __init__(
        self,
        db,
        activity: ActivityLog | None = None,
        locks: WishlistLocks | None = None,
        code_factory: Callable[[], str] = generate_share_code,
    ) -> None:
        super().__init__(db, activity, locks)
        self._code_factory = code_factory

    async def _code_taken(self, code: str) -> bool:
        return await self.db.scalar(select(WishlistShare.id).where(WishlistShare.share_code == code)) is not None

    async def _load_valid(self, share_code: str, password: str | None) -> WishlistShare:
        share = await self.db.scalar(select(WishlistShare).where(WishlistShare.share_code == share_code))
        if share is None:
            raise NotFound("Share link not found")
        if is_past(share.expires_at):
            raise Expired("Share link has expired")
        if share.password_hash:
            if not password or not verify_password(password, share.password_hash):
                audit_share_password_failed(share.id, share.wishlist_id)
                raise Unauthorized("Incorrect share password")
        return share

    async def create_share(
        self,
        wishlist_id: str,
        caller: Principal,
        share_type: ShareTypeEnum = ShareTypeEnum.PUBLIC,
        password: str | None = None,
        expires_at: datetime | None = None,
    ) -> WishlistShare:
        if expires_at is not None and is_past(expires_at):
            raise ValidationError("expires_at must be in the future")
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, caller.id, RoleEnum.ADMIN, "Only the owner or an admin can share this wishlist"
        )
        password_hash = get_password_hash(password) if password else None

        for attempt in range(1, settings.share_code_max_attempts + 1):
            code = self._code_factory()
            if await self._code_taken(code):
                logger.info("Share code collision, regenerating attempt=%s", attempt)
                continue
            # a new share supersedes the previous one of the same type
            await self.db.execute(
                delete(WishlistShare).where(
                    WishlistShare.wishlist_id == wishlist_id,
                    WishlistShare.share_type == share_type.value,
                )
            )
            share = WishlistShare(
                wishlist_id=wishlist_id,
                share_type=share_type.value,
                share_code=code,
                password_hash=password_hash,
                expires_at=expires_at,
                view_count=0,
                created_by=caller.id,
            )
            self.db.add(share)
            try:
                await self.db.flush()
            except IntegrityError:
                await self._rollback()
                logger.info("Share code collided on insert, regenerating attempt=%s", attempt)
                continue
            self.activity.record(wishlist_id, caller, "shared", "share", share.id, share_type.value)
            await self._commit()
            audit_wishlist_action(
                AuditAction.SHARE_CREATE,
                wishlist_id,
                caller.id,
                details={"share_type": share_type.value, "protected": password_hash is not None},
            )
            return share
        logger.error("Could not allocate a unique share code wishlist_id=%s", wishlist_id)
        raise Conflict("Could not allocate a unique share code, try again")

    async def resolve(self, share_code: str, password: str | None = None) -> SharedWishlistPublic:
        share = await self._load_valid(share_code, password)
        wishlist = await load_wishlist(self.db, share.wishlist_id)

        await self.db.execute(
            update(WishlistShare)
            .where(WishlistShare.id == share.id)
            .values(view_count=WishlistShare.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        view_count = await self.db.scalar(select(WishlistShare.view_count).where(WishlistShare.id == share.id))

        result = await self.db.execute(
            select(WishlistItem)
            .where(WishlistItem.wishlist_id == wishlist.id)
            .order_by(WishlistItem.created_at.asc())
        )
        items = [
            SharedItemPublic(
                id=item.id,
                title=item.title,
                description=item.description,
                price=float(item.price) if wishlist.show_prices and item.price is not None else None,
                currency=item.currency,
                category=item.category,
                priority=item.priority,
                status=item.status,
                image_url=item.image_url,
                purchase_url=item.purchase_url,
                store=item.store,
                tags=list(item.tags or []),
            )
            for item in result.scalars().all()
        ]
        return SharedWishlistPublic(
            id=wishlist.id,
            name=wishlist.name,
            description=wishlist.description,
            share_type=share.share_type,
            settings=wishlist_settings(wishlist),
            view_count=view_count or 0,
            items=items,
        )

    async def authorize_claim(self, share_code: str, password: str | None = None) -> ShareGrant:
        """Validate a share link presented for a reserve/purchase/release call."""
        share = await self._load_valid(share_code, password)
        return ShareGrant(share_id=share.id, wishlist_id=share.wishlist_id, share_type=share.share_type)

    async def revoke(self, wishlist_id: str, caller: Principal, share_type: ShareTypeEnum | None = None) -> int:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, caller.id, RoleEnum.ADMIN, "Only the owner or an admin can unshare this wishlist"
        )
        stmt = delete(WishlistShare).where(WishlistShare.wishlist_id == wishlist.id)
        if share_type is not None:
            stmt = stmt.where(WishlistShare.share_type == share_type.value)
        result = await self.db.execute(stmt.execution_options(synchronize_session=False))
        removed = result.rowcount or 0
        if removed:
            self.activity.record(
                wishlist.id, caller, "unshared", "share", None, share_type.value if share_type else "all"
            )
        await self._commit()
        audit_wishlist_action(
            AuditAction.SHARE_REVOKE,
            wishlist_id,
            caller.id,
            details={"share_type": share_type.value if share_type else None, "removed": removed},
        )
        return removed

    async def list_shares(self, wishlist_id: str, caller: Principal) -> list[WishlistShare]:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, caller.id, RoleEnum.ADMIN, "Only the owner or an admin can view share links"
        )
        result = await self.db.execute(
            select(WishlistShare)
            .where(WishlistShare.wishlist_id == wishlist.id)
            .order_by(WishlistShare.created_at.desc())
        )
        return list(result.scalars().all())
