from datetime import datetime

from pydantic import BaseModel, Field

from gifttracker.models.models import ItemPriorityEnum, ItemStatusEnum, ShareTypeEnum
from gifttracker.schemas.wishlist import WishlistSettings


class ShareCreate(BaseModel):
    share_type: ShareTypeEnum = ShareTypeEnum.PUBLIC
    password: str | None = Field(default=None, min_length=1, max_length=128)
    expires_at: datetime | None = None


class ShareResolveRequest(BaseModel):
    password: str | None = None


class SharePublic(BaseModel):
    id: str
    wishlist_id: str
    share_type: ShareTypeEnum
    share_code: str
    share_url: str
    has_password: bool
    expires_at: datetime | None
    view_count: int
    created_at: datetime


class SharedItemPublic(BaseModel):
    """Item as seen through a share link: no claimant identities."""

    id: str
    title: str
    description: str | None
    price: float | None
    currency: str
    category: str | None
    priority: ItemPriorityEnum
    status: ItemStatusEnum
    image_url: str | None
    purchase_url: str | None
    store: str | None
    tags: list[str]


class SharedWishlistPublic(BaseModel):
    id: str
    name: str
    description: str | None
    share_type: ShareTypeEnum
    settings: WishlistSettings
    view_count: int
    items: list[SharedItemPublic]
