from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from gifttracker.models.models import InvitationStatusEnum, RoleEnum


def _reject_owner(value: RoleEnum) -> RoleEnum:
    if not value.assignable:
        raise ValueError("owner role cannot be assigned")
    return value


class InvitationCreate(BaseModel):
    email: EmailStr
    role: RoleEnum = RoleEnum.VIEWER

    @field_validator("role")
    @classmethod
    def _assignable_role(cls, value: RoleEnum) -> RoleEnum:
        return _reject_owner(value)


class InvitationPublic(BaseModel):
    id: str
    wishlist_id: str
    email: str
    role: str
    invited_by: str
    status: InvitationStatusEnum
    created_at: datetime
    expires_at: datetime
    responded_at: datetime | None

    class Config:
        from_attributes = True


class CollaboratorRoleUpdate(BaseModel):
    role: RoleEnum

    @field_validator("role")
    @classmethod
    def _assignable_role(cls, value: RoleEnum) -> RoleEnum:
        return _reject_owner(value)


class CommentCreate(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    parent_id: str | None = None

    @field_validator("message")
    @classmethod
    def _message_strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("message must not be blank")
        return stripped


class CommentPublic(BaseModel):
    id: str
    item_id: str
    parent_id: str | None
    author_id: str
    author_name: str
    message: str
    created_at: datetime

    class Config:
        from_attributes = True
