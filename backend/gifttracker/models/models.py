from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as StrEnumBase
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from gifttracker.db.session import Base


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ItemStatusEnum(str, StrEnumBase):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PURCHASED = "purchased"


class ItemPriorityEnum(str, StrEnumBase):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RoleEnum(str, StrEnumBase):
    """Membership roles, totally ordered: owner > admin > contributor > viewer.

    Only viewer, contributor and admin are ever stored on a collaborator row;
    owner is implied by ``Wishlist.owner_id``.
    """

    VIEWER = "viewer"
    CONTRIBUTOR = "contributor"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @property
    def assignable(self) -> bool:
        return self is not RoleEnum.OWNER

    def __lt__(self, other):
        if not isinstance(other, RoleEnum):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, RoleEnum):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, RoleEnum):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, RoleEnum):
            return NotImplemented
        return self.rank >= other.rank


_ROLE_RANK = {
    RoleEnum.VIEWER: 1,
    RoleEnum.CONTRIBUTOR: 2,
    RoleEnum.ADMIN: 3,
    RoleEnum.OWNER: 4,
}


class InvitationStatusEnum(str, StrEnumBase):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class ShareTypeEnum(str, StrEnumBase):
    PUBLIC = "public"
    PRIVATE = "private"
    COLLABORATIVE = "collaborative"


class Wishlist(Base):
    __tablename__ = "wishlists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    is_collaborative: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_comments: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_purchases: Mapped[bool] = mapped_column(Boolean, default=True)
    show_prices: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_duplicates: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)


class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wishlist_id: Mapped[str] = mapped_column(
        ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    priority: Mapped[str] = mapped_column(String(10), default=ItemPriorityEnum.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(16), default=ItemStatusEnum.AVAILABLE.value, index=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    purchase_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    store: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    reserved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reserved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    purchased_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    purchased_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_wishlist_items_price_non_negative"),
        CheckConstraint(
            "reserved_by IS NULL OR purchased_by IS NULL",
            name="ck_wishlist_items_single_claimant",
        ),
        CheckConstraint(
            "reserved_by IS NULL OR status = 'reserved'",
            name="ck_wishlist_items_reserved_by_status",
        ),
        CheckConstraint(
            "(purchased_by IS NULL AND purchased_at IS NULL) OR status = 'purchased'",
            name="ck_wishlist_items_purchase_status",
        ),
    )


class WishlistCollaborator(Base):
    __tablename__ = "wishlist_collaborators"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wishlist_id: Mapped[str] = mapped_column(
        ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    invited_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("wishlist_id", "user_id", name="uq_wishlist_collaborators_member"),
    )


class WishlistInvitation(Base):
    __tablename__ = "wishlist_invitations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wishlist_id: Mapped[str] = mapped_column(
        ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    invited_by: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=InvitationStatusEnum.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)


class WishlistShare(Base):
    __tablename__ = "wishlist_shares"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wishlist_id: Mapped[str] = mapped_column(
        ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    share_type: Mapped[str] = mapped_column(String(16), default=ShareTypeEnum.PUBLIC.value)
    share_code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class WishlistComment(Base):
    __tablename__ = "wishlist_comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("wishlist_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("wishlist_comments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    author_name: Mapped[str] = mapped_column(String(120), nullable=False)
    message: Mapped[str] = mapped_column(String(2000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class WishlistActivity(Base):
    __tablename__ = "wishlist_activity"

    # integer key doubles as the append order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wishlist_id: Mapped[str] = mapped_column(
        ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    verb: Mapped[str] = mapped_column(String(32), nullable=False)
    target_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
