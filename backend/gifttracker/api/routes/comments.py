from fastapi import APIRouter, Response, status

from gifttracker.api.deps import CommentLedgerDep, CurrentPrincipal
from gifttracker.schemas.collaboration import CommentCreate, CommentPublic

router = APIRouter(prefix="/wishlist-items/{item_id}/comments", tags=["comments"])


@router.get("", response_model=list[CommentPublic])
async def list_comments(item_id: str, ledger: CommentLedgerDep, current: CurrentPrincipal) -> list[CommentPublic]:
    return [CommentPublic.model_validate(c) for c in await ledger.list_for_item(item_id, current)]


@router.post("", response_model=CommentPublic, status_code=status.HTTP_201_CREATED)
async def add_comment(
    item_id: str,
    payload: CommentCreate,
    ledger: CommentLedgerDep,
    current: CurrentPrincipal,
) -> CommentPublic:
    comment = await ledger.add(item_id, current, payload)
    return CommentPublic.model_validate(comment)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    item_id: str,
    comment_id: str,
    ledger: CommentLedgerDep,
    current: CurrentPrincipal,
) -> Response:
    await ledger.delete(item_id, comment_id, current)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
