import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from gifttracker.core.errors import Forbidden, NotFound
from gifttracker.models.models import WishlistComment, WishlistItem
from gifttracker.schemas.collaboration import CommentCreate
from gifttracker.services.access import Principal, load_wishlist, require_read
from gifttracker.services.base import BaseService

logger = logging.getLogger("gifttracker.comments")


class CommentLedger(BaseService):
    """Comments on items; replies attach to the top-level comment of their thread."""

    async def _load_item(self, item_id: str) -> WishlistItem:
        item = await self.db.get(WishlistItem, item_id)
        if item is None:
            raise NotFound("Item not found")
        return item

    async def add(self, item_id: str, author: Principal, data: CommentCreate) -> WishlistComment:
        item = await self._load_item(item_id)
        async with self.locks.hold(item.wishlist_id):
            item = await self.db.get(WishlistItem, item_id, populate_existing=True)
            if item is None:
                raise NotFound("Item not found")
            wishlist = await load_wishlist(self.db, item.wishlist_id)
            await require_read(self.db, wishlist, author.id)
            if not wishlist.allow_comments:
                raise Forbidden("Comments are disabled on this wishlist")

            parent_id = None
            if data.parent_id:
                parent = await self.db.scalar(
                    select(WishlistComment).where(
                        WishlistComment.id == data.parent_id,
                        WishlistComment.item_id == item.id,
                    )
                )
                if parent is None:
                    raise NotFound("Parent comment not found")
                parent_id = parent.parent_id or parent.id

            comment = WishlistComment(
                item_id=item.id,
                parent_id=parent_id,
                author_id=author.id,
                author_name=author.display_name,
                message=data.message,
            )
            self.db.add(comment)
            try:
                await self.db.flush()
            except IntegrityError as exc:
                await self._rollback()
                raise NotFound("Item not found") from exc
            self.activity.record(wishlist.id, author, "comment_added", "item", item.id, item.title)
            await self._commit()
        return comment

    async def delete(self, item_id: str, comment_id: str, caller: Principal) -> None:
        comment = await self.db.scalar(
            select(WishlistComment).where(WishlistComment.id == comment_id, WishlistComment.item_id == item_id)
        )
        if comment is None:
            raise NotFound("Comment not found")
        if comment.author_id != caller.id:
            raise Forbidden("Only the author can delete this comment")
        await self.db.execute(
            delete(WishlistComment)
            .where(WishlistComment.parent_id == comment.id)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(comment)
        await self._commit()
        logger.info("Comment deleted comment_id=%s item_id=%s", comment_id, item_id)

    async def list_for_item(self, item_id: str, viewer: Principal) -> list[WishlistComment]:
        item = await self._load_item(item_id)
        wishlist = await load_wishlist(self.db, item.wishlist_id)
        await require_read(self.db, wishlist, viewer.id)
        result = await self.db.execute(
            select(WishlistComment)
            .where(WishlistComment.item_id == item.id)
            .order_by(WishlistComment.created_at.asc())
        )
        return list(result.scalars().all())
