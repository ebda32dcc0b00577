from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gifttracker.models.models import ItemPriorityEnum, ItemStatusEnum


class WishlistSettings(BaseModel):
    allow_comments: bool = True
    allow_purchases: bool = True
    show_prices: bool = True
    allow_duplicates: bool = False


class WishlistSettingsUpdate(BaseModel):
    allow_comments: bool | None = None
    allow_purchases: bool | None = None
    show_prices: bool | None = None
    allow_duplicates: bool | None = None


class WishlistBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    is_public: bool = False
    is_collaborative: bool = False

    @field_validator("name")
    @classmethod
    def _wishlist_name_strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped

    @field_validator("description")
    @classmethod
    def _wishlist_description_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class WishlistCreate(WishlistBase):
    settings: WishlistSettings = Field(default_factory=WishlistSettings)


class WishlistUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    is_public: bool | None = None
    is_collaborative: bool | None = None
    settings: WishlistSettingsUpdate | None = None

    @field_validator("name")
    @classmethod
    def _wishlist_name_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class ItemBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    price: float = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    category: str | None = Field(default=None, max_length=64)
    priority: ItemPriorityEnum = ItemPriorityEnum.MEDIUM
    image_url: str | None = None
    purchase_url: str | None = None
    store: str | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("title")
    @classmethod
    def _title_strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @field_validator("currency")
    @classmethod
    def _currency_upper(cls, value: str) -> str:
        return value.upper()

    @field_validator("image_url", "purchase_url")
    @classmethod
    def _normalize_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class ItemCreate(ItemBase):
    pass


class ItemUpdate(BaseModel):
    # status and claimants only move through reserve/purchase/release
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    price: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    category: str | None = Field(default=None, max_length=64)
    priority: ItemPriorityEnum | None = None
    image_url: str | None = None
    purchase_url: str | None = None
    store: str | None = None
    tags: list[str] | None = None
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("title")
    @classmethod
    def _title_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @field_validator("currency")
    @classmethod
    def _currency_upper(cls, value: str | None) -> str | None:
        return value.upper() if value else value


class ItemPublic(BaseModel):
    id: str
    wishlist_id: str
    title: str
    description: str | None
    price: float
    currency: str
    category: str | None
    priority: ItemPriorityEnum
    status: ItemStatusEnum
    image_url: str | None
    purchase_url: str | None
    store: str | None
    tags: list[str]
    notes: str | None
    reserved_by: str | None
    reserved_at: datetime | None
    purchased_by: str | None
    purchased_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CollaboratorPublic(BaseModel):
    id: str
    wishlist_id: str
    user_id: str
    user_name: str | None
    user_email: str | None
    role: str
    invited_by: str | None
    invited_at: datetime | None
    joined_at: datetime

    class Config:
        from_attributes = True


class WishlistPublic(BaseModel):
    id: str
    owner_id: str
    name: str
    description: str | None
    is_public: bool
    is_collaborative: bool
    settings: WishlistSettings
    created_at: datetime
    updated_at: datetime


class WishlistDetail(WishlistPublic):
    role: str | None = None
    items: list[ItemPublic] = []
    collaborators: list[CollaboratorPublic] = []


class ActivityPublic(BaseModel):
    id: int
    wishlist_id: str
    actor_id: str
    actor_name: str | None
    verb: str
    target_type: str | None
    target_id: str | None
    target_label: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class WishlistStats(BaseModel):
    total_items: int
    available_items: int
    reserved_items: int
    purchased_items: int
    total_value: float
    average_price: float
    most_popular_category: str
    recent_activity: list[ActivityPublic]
