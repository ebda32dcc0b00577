"""Capability checks for the collaborator path.

Share-link holders are authorised separately (see ``services.shares``); the
two paths are never merged so anonymous viewers never see member identities.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gifttracker.core.errors import Forbidden, NotFound
from gifttracker.models.models import RoleEnum, Wishlist, WishlistCollaborator


@dataclass(frozen=True)
class Principal:
    id: str
    name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or "Anonymous"


@dataclass(frozen=True)
class ShareGrant:
    """A validated share link presented alongside (or instead of) a principal."""

    share_id: str
    wishlist_id: str
    share_type: str

    @property
    def claimant_id(self) -> str:
        return f"share:{self.share_id}"


async def load_wishlist(db: AsyncSession, wishlist_id: str) -> Wishlist:
    wishlist = await db.get(Wishlist, wishlist_id)
    if wishlist is None:
        raise NotFound("Wishlist not found")
    return wishlist


async def membership_role(db: AsyncSession, wishlist: Wishlist, user_id: str | None) -> RoleEnum | None:
    if user_id is None:
        return None
    if wishlist.owner_id == user_id:
        return RoleEnum.OWNER
    role = await db.scalar(
        select(WishlistCollaborator.role).where(
            WishlistCollaborator.wishlist_id == wishlist.id,
            WishlistCollaborator.user_id == user_id,
        )
    )
    return RoleEnum(role) if role else None


async def require_role(
    db: AsyncSession,
    wishlist: Wishlist,
    user_id: str,
    minimum: RoleEnum,
    message: str,
) -> RoleEnum:
    role = await membership_role(db, wishlist, user_id)
    if role is None or role < minimum:
        raise Forbidden(message)
    return role


async def require_read(db: AsyncSession, wishlist: Wishlist, user_id: str) -> RoleEnum | None:
    """Members may always read; anybody authenticated may read a public wishlist."""
    role = await membership_role(db, wishlist, user_id)
    if role is None and not wishlist.is_public:
        raise Forbidden("You do not have access to this wishlist")
    return role
