from fastapi import APIRouter, Response, status

from gifttracker.api.deps import CollaboratorRegistryDep, CurrentPrincipal, InvitationServiceDep
from gifttracker.models.models import WishlistInvitation
from gifttracker.schemas.collaboration import CollaboratorRoleUpdate, InvitationCreate, InvitationPublic
from gifttracker.schemas.wishlist import CollaboratorPublic
from gifttracker.services.invitations import effective_status

router = APIRouter(tags=["collaboration"])


def _serialize_invitation(invitation: WishlistInvitation) -> InvitationPublic:
    payload = InvitationPublic.model_validate(invitation)
    payload.status = effective_status(invitation)
    return payload


@router.post(
    "/wishlists/{wishlist_id}/invite",
    response_model=InvitationPublic,
    status_code=status.HTTP_201_CREATED,
)
async def invite_collaborator(
    wishlist_id: str,
    payload: InvitationCreate,
    invitations: InvitationServiceDep,
    current: CurrentPrincipal,
) -> InvitationPublic:
    invitation = await invitations.invite(wishlist_id, current, payload.email, payload.role)
    return _serialize_invitation(invitation)


@router.get("/wishlists/{wishlist_id}/invitations", response_model=list[InvitationPublic])
async def list_invitations(
    wishlist_id: str,
    invitations: InvitationServiceDep,
    current: CurrentPrincipal,
) -> list[InvitationPublic]:
    return [_serialize_invitation(i) for i in await invitations.list_for_wishlist(wishlist_id, current)]


@router.put("/wishlist-invitations/{invitation_id}/accept", response_model=InvitationPublic)
async def accept_invitation(
    invitation_id: str,
    invitations: InvitationServiceDep,
    current: CurrentPrincipal,
) -> InvitationPublic:
    invitation = await invitations.accept(invitation_id, current)
    return _serialize_invitation(invitation)


@router.put("/wishlist-invitations/{invitation_id}/decline", response_model=InvitationPublic)
async def decline_invitation(
    invitation_id: str,
    invitations: InvitationServiceDep,
    current: CurrentPrincipal,
) -> InvitationPublic:
    invitation = await invitations.decline(invitation_id, current)
    return _serialize_invitation(invitation)


@router.get("/wishlists/{wishlist_id}/collaborators", response_model=list[CollaboratorPublic])
async def list_collaborators(
    wishlist_id: str,
    registry: CollaboratorRegistryDep,
    current: CurrentPrincipal,
) -> list[CollaboratorPublic]:
    return [CollaboratorPublic.model_validate(c) for c in await registry.list_for(wishlist_id, current)]


@router.put("/wishlists/{wishlist_id}/collaborators/{collaborator_id}", response_model=CollaboratorPublic)
async def update_collaborator_role(
    wishlist_id: str,
    collaborator_id: str,
    payload: CollaboratorRoleUpdate,
    registry: CollaboratorRegistryDep,
    current: CurrentPrincipal,
) -> CollaboratorPublic:
    collaborator = await registry.update_role(wishlist_id, collaborator_id, payload.role, current)
    return CollaboratorPublic.model_validate(collaborator)


@router.delete("/wishlists/{wishlist_id}/collaborators/{collaborator_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_collaborator(
    wishlist_id: str,
    collaborator_id: str,
    registry: CollaboratorRegistryDep,
    current: CurrentPrincipal,
) -> Response:
    await registry.remove(wishlist_id, collaborator_id, current)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
