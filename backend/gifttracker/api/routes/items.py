from typing import Awaitable

from fastapi import APIRouter, Response, status

from gifttracker.api.deps import CurrentPrincipal, ItemLedgerDep, OptionalPrincipal, ShareGrantDep
from gifttracker.core.claim_metrics import claim_metrics
from gifttracker.core.errors import Unauthorized, WishlistError
from gifttracker.models.models import WishlistItem
from gifttracker.schemas.wishlist import ItemCreate, ItemPublic, ItemUpdate
from gifttracker.services.access import Principal, ShareGrant

router = APIRouter(prefix="/wishlists/{wishlist_id}/items", tags=["items"])


def _require_claimant(principal: Principal | None, grant: ShareGrant | None) -> None:
    if principal is None and grant is None:
        raise Unauthorized("Sign in or present a share link to claim items")


async def _tracked(verb: str, call: Awaitable[WishlistItem]) -> ItemPublic:
    try:
        item = await call
    except WishlistError as exc:
        claim_metrics.record(verb, exc.kind)
        raise
    claim_metrics.record(verb, "ok")
    return ItemPublic.model_validate(item)


@router.get("", response_model=list[ItemPublic])
async def list_items(wishlist_id: str, ledger: ItemLedgerDep, current: CurrentPrincipal) -> list[ItemPublic]:
    return [ItemPublic.model_validate(item) for item in await ledger.list_items(wishlist_id, current)]


@router.post("", response_model=ItemPublic, status_code=status.HTTP_201_CREATED)
async def add_item(
    wishlist_id: str,
    payload: ItemCreate,
    ledger: ItemLedgerDep,
    current: CurrentPrincipal,
) -> ItemPublic:
    item = await ledger.add_item(wishlist_id, current, payload)
    return ItemPublic.model_validate(item)


@router.put("/{item_id}", response_model=ItemPublic)
async def update_item(
    wishlist_id: str,
    item_id: str,
    payload: ItemUpdate,
    ledger: ItemLedgerDep,
    current: CurrentPrincipal,
) -> ItemPublic:
    item = await ledger.update_item(wishlist_id, item_id, current, payload)
    return ItemPublic.model_validate(item)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    wishlist_id: str,
    item_id: str,
    ledger: ItemLedgerDep,
    current: CurrentPrincipal,
) -> Response:
    await ledger.delete_item(wishlist_id, item_id, current)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{item_id}/reserve", response_model=ItemPublic)
async def reserve_item(
    wishlist_id: str,
    item_id: str,
    ledger: ItemLedgerDep,
    current: OptionalPrincipal,
    grant: ShareGrantDep,
) -> ItemPublic:
    _require_claimant(current, grant)
    return await _tracked("reserve", ledger.reserve(wishlist_id, item_id, current, grant))


@router.put("/{item_id}/purchase", response_model=ItemPublic)
async def purchase_item(
    wishlist_id: str,
    item_id: str,
    ledger: ItemLedgerDep,
    current: OptionalPrincipal,
    grant: ShareGrantDep,
) -> ItemPublic:
    _require_claimant(current, grant)
    return await _tracked("purchase", ledger.purchase(wishlist_id, item_id, current, grant))


@router.put("/{item_id}/release", response_model=ItemPublic)
async def release_item(
    wishlist_id: str,
    item_id: str,
    ledger: ItemLedgerDep,
    current: OptionalPrincipal,
    grant: ShareGrantDep,
) -> ItemPublic:
    _require_claimant(current, grant)
    return await _tracked("release", ledger.release(wishlist_id, item_id, current, grant))
