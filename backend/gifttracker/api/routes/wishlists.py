import logging

from fastapi import APIRouter, Body, Header, Query, Request, Response, status

from gifttracker.api.deps import CurrentPrincipal, ShareServiceDep, WishlistStoreDep
from gifttracker.core.config import settings
from gifttracker.core.rate_limit import check_share_rate_limit
from gifttracker.models.models import ShareTypeEnum, Wishlist, WishlistShare
from gifttracker.schemas.share import SharedWishlistPublic, ShareCreate, SharePublic, ShareResolveRequest
from gifttracker.schemas.wishlist import (
    ActivityPublic,
    CollaboratorPublic,
    ItemPublic,
    WishlistCreate,
    WishlistDetail,
    WishlistPublic,
    WishlistStats,
    WishlistUpdate,
)
from gifttracker.services.wishlists import wishlist_settings

logger = logging.getLogger("gifttracker.api.wishlists")

router = APIRouter(prefix="/wishlists", tags=["wishlists"])


def _serialize_wishlist(wishlist: Wishlist) -> WishlistPublic:
    return WishlistPublic(
        id=wishlist.id,
        owner_id=wishlist.owner_id,
        name=wishlist.name,
        description=wishlist.description,
        is_public=wishlist.is_public,
        is_collaborative=wishlist.is_collaborative,
        settings=wishlist_settings(wishlist),
        created_at=wishlist.created_at,
        updated_at=wishlist.updated_at,
    )


def _serialize_share(share: WishlistShare) -> SharePublic:
    # never echo the password hash, only whether one is set
    return SharePublic(
        id=share.id,
        wishlist_id=share.wishlist_id,
        share_type=share.share_type,
        share_code=share.share_code,
        share_url=settings.share_url(share.share_code),
        has_password=bool(share.password_hash),
        expires_at=share.expires_at,
        view_count=share.view_count or 0,
        created_at=share.created_at,
    )


@router.get("", response_model=list[WishlistPublic])
async def list_my_wishlists(store: WishlistStoreDep, current: CurrentPrincipal) -> list[WishlistPublic]:
    wishlists = await store.list_for_user(current.id)
    return [_serialize_wishlist(w) for w in wishlists]


@router.get("/shared-with-me", response_model=list[WishlistPublic])
async def list_shared_with_me(store: WishlistStoreDep, current: CurrentPrincipal) -> list[WishlistPublic]:
    wishlists = await store.list_shared_with(current.id)
    return [_serialize_wishlist(w) for w in wishlists]


@router.post("", response_model=WishlistPublic, status_code=status.HTTP_201_CREATED)
async def create_wishlist(
    payload: WishlistCreate,
    store: WishlistStoreDep,
    current: CurrentPrincipal,
) -> WishlistPublic:
    wishlist = await store.create(current, payload)
    return _serialize_wishlist(wishlist)


@router.get("/public/{share_code}", response_model=SharedWishlistPublic)
async def resolve_public_share(
    share_code: str,
    request: Request,
    shares: ShareServiceDep,
    x_share_password: str | None = Header(default=None),
) -> SharedWishlistPublic:
    check_share_rate_limit(request, share_code)
    return await shares.resolve(share_code, x_share_password)


@router.post("/public/{share_code}", response_model=SharedWishlistPublic)
async def resolve_public_share_with_password(
    share_code: str,
    request: Request,
    shares: ShareServiceDep,
    payload: ShareResolveRequest | None = Body(default=None),
) -> SharedWishlistPublic:
    check_share_rate_limit(request, share_code)
    return await shares.resolve(share_code, payload.password if payload else None)


@router.get("/{wishlist_id}", response_model=WishlistDetail)
async def get_wishlist(
    wishlist_id: str,
    store: WishlistStoreDep,
    current: CurrentPrincipal,
) -> WishlistDetail:
    wishlist, role, items, collaborators = await store.get_detail(wishlist_id, current)
    base = _serialize_wishlist(wishlist)
    return WishlistDetail(
        **base.model_dump(),
        role=role.value if role else None,
        items=[ItemPublic.model_validate(item) for item in items],
        collaborators=[CollaboratorPublic.model_validate(c) for c in collaborators],
    )


@router.put("/{wishlist_id}", response_model=WishlistPublic)
async def update_wishlist(
    wishlist_id: str,
    payload: WishlistUpdate,
    store: WishlistStoreDep,
    current: CurrentPrincipal,
) -> WishlistPublic:
    wishlist = await store.update(wishlist_id, current, payload)
    return _serialize_wishlist(wishlist)


@router.delete("/{wishlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_wishlist(
    wishlist_id: str,
    store: WishlistStoreDep,
    current: CurrentPrincipal,
) -> Response:
    await store.delete(wishlist_id, current)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{wishlist_id}/share", response_model=SharePublic, status_code=status.HTTP_201_CREATED)
async def share_wishlist(
    wishlist_id: str,
    shares: ShareServiceDep,
    current: CurrentPrincipal,
    payload: ShareCreate | None = Body(default=None),
) -> SharePublic:
    payload = payload or ShareCreate()
    share = await shares.create_share(
        wishlist_id,
        current,
        share_type=payload.share_type,
        password=payload.password,
        expires_at=payload.expires_at,
    )
    return _serialize_share(share)


@router.delete("/{wishlist_id}/share", status_code=status.HTTP_204_NO_CONTENT)
async def unshare_wishlist(
    wishlist_id: str,
    shares: ShareServiceDep,
    current: CurrentPrincipal,
    share_type: ShareTypeEnum | None = Query(default=None),
) -> Response:
    await shares.revoke(wishlist_id, current, share_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{wishlist_id}/shares", response_model=list[SharePublic])
async def list_shares(
    wishlist_id: str,
    shares: ShareServiceDep,
    current: CurrentPrincipal,
) -> list[SharePublic]:
    return [_serialize_share(share) for share in await shares.list_shares(wishlist_id, current)]


@router.get("/{wishlist_id}/activity", response_model=list[ActivityPublic])
async def list_activity(
    wishlist_id: str,
    store: WishlistStoreDep,
    current: CurrentPrincipal,
    limit: int | None = Query(default=None, ge=1, le=settings.activity_max_limit),
) -> list[ActivityPublic]:
    entries = await store.activity_feed(wishlist_id, current, limit)
    return [ActivityPublic.model_validate(entry) for entry in entries]


@router.get("/{wishlist_id}/stats", response_model=WishlistStats)
async def wishlist_stats(
    wishlist_id: str,
    store: WishlistStoreDep,
    current: CurrentPrincipal,
) -> WishlistStats:
    return await store.stats(wishlist_id, current)
