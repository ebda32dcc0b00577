from typing import Annotated
import logging

from fastapi import Cookie, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gifttracker.core.errors import Unauthorized
from gifttracker.core.security import decode_access_token
from gifttracker.db.session import get_db
from gifttracker.realtime.manager import manager
from gifttracker.services.access import Principal, ShareGrant
from gifttracker.services.activity import ActivityLog
from gifttracker.services.collaborators import CollaboratorRegistry
from gifttracker.services.comments import CommentLedger
from gifttracker.services.invitations import InvitationService
from gifttracker.services.items import ItemLedger
from gifttracker.services.shares import ShareTokenService
from gifttracker.services.wishlists import WishlistStore


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
logger = logging.getLogger("gifttracker.auth")


def principal_from_token(token: str) -> Principal | None:
    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        return None
    return Principal(id=str(payload["sub"]), name=payload.get("name"), email=payload.get("email"))


def _request_token(request: Request, access_token: str | None) -> str | None:
    token = access_token
    if not token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token or None


async def get_current_principal(
    request: Request,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> Principal:
    token = _request_token(request, access_token)
    if not token:
        logger.info(
            "Auth token missing path=%s ip=%s",
            request.url.path,
            request.client.host if request.client else None,
        )
        raise Unauthorized("Not authenticated")

    principal = principal_from_token(token)
    if principal is None:
        logger.info("Auth token invalid path=%s", request.url.path)
        raise Unauthorized("Invalid token")
    return principal


async def get_optional_principal(
    request: Request,
    access_token: str | None = Cookie(default=None, alias="access_token"),
) -> Principal | None:
    token = _request_token(request, access_token)
    if not token:
        return None
    return principal_from_token(token)


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
OptionalPrincipal = Annotated[Principal | None, Depends(get_optional_principal)]


def get_activity_log(db: DbSessionDep) -> ActivityLog:
    return ActivityLog(db, manager)


ActivityDep = Annotated[ActivityLog, Depends(get_activity_log)]


def get_wishlist_store(db: DbSessionDep, activity: ActivityDep) -> WishlistStore:
    return WishlistStore(db, activity)


def get_item_ledger(db: DbSessionDep, activity: ActivityDep) -> ItemLedger:
    return ItemLedger(db, activity)


def get_collaborator_registry(db: DbSessionDep, activity: ActivityDep) -> CollaboratorRegistry:
    return CollaboratorRegistry(db, activity)


def get_invitation_service(db: DbSessionDep, activity: ActivityDep) -> InvitationService:
    return InvitationService(db, activity)


def get_share_service(db: DbSessionDep, activity: ActivityDep) -> ShareTokenService:
    return ShareTokenService(db, activity)


def get_comment_ledger(db: DbSessionDep, activity: ActivityDep) -> CommentLedger:
    return CommentLedger(db, activity)


WishlistStoreDep = Annotated[WishlistStore, Depends(get_wishlist_store)]
ItemLedgerDep = Annotated[ItemLedger, Depends(get_item_ledger)]
CollaboratorRegistryDep = Annotated[CollaboratorRegistry, Depends(get_collaborator_registry)]
InvitationServiceDep = Annotated[InvitationService, Depends(get_invitation_service)]
ShareServiceDep = Annotated[ShareTokenService, Depends(get_share_service)]
CommentLedgerDep = Annotated[CommentLedger, Depends(get_comment_ledger)]


async def get_share_grant(
    shares: ShareServiceDep,
    x_share_code: str | None = Header(default=None),
    x_share_password: str | None = Header(default=None),
) -> ShareGrant | None:
    """Share-link capability sent with claim requests by anonymous holders."""
    if not x_share_code:
        return None
    return await shares.authorize_claim(x_share_code, x_share_password)


ShareGrantDep = Annotated[ShareGrant | None, Depends(get_share_grant)]
