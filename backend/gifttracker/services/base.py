from sqlalchemy.ext.asyncio import AsyncSession

from gifttracker.services.activity import ActivityLog
from gifttracker.services.locks import WishlistLocks, wishlist_locks


class BaseService:
    def __init__(
        self,
        db: AsyncSession,
        activity: ActivityLog | None = None,
        locks: WishlistLocks | None = None,
    ) -> None:
        self.db = db
        self.activity = activity or ActivityLog(db)
        self.locks = locks or wishlist_locks

    async def _commit(self) -> None:
        """Commit the unit of work, then fan out its activity entries."""
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            self.activity.discard()
            raise
        await self.activity.publish()

    async def _rollback(self) -> None:
        await self.db.rollback()
        self.activity.discard()
