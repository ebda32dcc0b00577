import logging
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from gifttracker.core.audit import AuditAction, audit_wishlist_action
from gifttracker.core.config import settings
from gifttracker.core.errors import Conflict, Expired, NotFound
from gifttracker.models.models import InvitationStatusEnum, RoleEnum, WishlistInvitation
from gifttracker.services.access import Principal, load_wishlist, require_role
from gifttracker.services.base import BaseService
from gifttracker.services.collaborators import CollaboratorRegistry
from gifttracker.utils import is_past, utcnow

logger = logging.getLogger("gifttracker.invitations")


def effective_status(invitation: WishlistInvitation) -> InvitationStatusEnum:
    """Pending invitations past their deadline read as expired."""
    status = InvitationStatusEnum(invitation.status)
    if status is InvitationStatusEnum.PENDING and is_past(invitation.expires_at):
        return InvitationStatusEnum.EXPIRED
    return status


class InvitationService(BaseService):
    async def _load(self, invitation_id: str) -> WishlistInvitation:
        invitation = await self.db.get(WishlistInvitation, invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found")
        return invitation

    async def invite(self, wishlist_id: str, inviter: Principal, email: str, role: RoleEnum) -> WishlistInvitation:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, inviter.id, RoleEnum.ADMIN, "Only the owner or an admin can invite collaborators"
        )
        now = utcnow()
        invitation = WishlistInvitation(
            wishlist_id=wishlist.id,
            email=email.strip().lower(),
            role=role.value,
            invited_by=inviter.id,
            status=InvitationStatusEnum.PENDING.value,
            created_at=now,
            expires_at=now + timedelta(days=settings.invitation_ttl_days),
        )
        self.db.add(invitation)
        await self.db.flush()
        self.activity.record(wishlist.id, inviter, "invited", "invitation", invitation.id, invitation.email)
        await self._commit()
        logger.info("Invitation created wishlist_id=%s invitation_id=%s", wishlist.id, invitation.id)
        return invitation

    async def accept(self, invitation_id: str, accepter: Principal) -> WishlistInvitation:
        invitation = await self._load(invitation_id)
        wishlist_id = invitation.wishlist_id
        async with self.locks.hold(wishlist_id):
            invitation = await self.db.get(WishlistInvitation, invitation_id, populate_existing=True)
            if invitation is None:
                raise NotFound("Invitation not found")
            if invitation.status == InvitationStatusEnum.EXPIRED.value:
                raise Expired("Invitation has expired")
            if invitation.status != InvitationStatusEnum.PENDING.value:
                raise Conflict(f"Invitation is already {invitation.status}")
            if is_past(invitation.expires_at):
                invitation.status = InvitationStatusEnum.EXPIRED.value
                await self._commit()
                raise Expired("Invitation has expired")

            wishlist = await load_wishlist(self.db, wishlist_id)
            registry = CollaboratorRegistry(self.db, self.activity, self.locks)
            await registry.stage_member(
                wishlist,
                accepter.id,
                RoleEnum(invitation.role),
                user_name=accepter.name,
                user_email=accepter.email or invitation.email,
                invited_by=invitation.invited_by,
                invited_at=invitation.created_at,
            )

            now = utcnow()
            result = await self.db.execute(
                update(WishlistInvitation)
                .where(
                    WishlistInvitation.id == invitation.id,
                    WishlistInvitation.status == InvitationStatusEnum.PENDING.value,
                )
                .values(status=InvitationStatusEnum.ACCEPTED.value, responded_at=now, accepted_by=accepter.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self._rollback()
                raise Conflict("Invitation was already answered")
            self.activity.record(
                wishlist.id,
                accepter,
                "collaborator_added",
                "collaborator",
                accepter.id,
                accepter.name or invitation.email,
            )
            try:
                await self._commit()
            except IntegrityError as exc:
                raise Conflict("User is already a collaborator on this wishlist") from exc
        await self.db.refresh(invitation)
        audit_wishlist_action(
            AuditAction.INVITATION_ACCEPT, wishlist_id, accepter.id, details={"invitation_id": invitation_id}
        )
        return invitation

    async def decline(self, invitation_id: str, caller: Principal | None = None) -> WishlistInvitation:
        invitation = await self._load(invitation_id)
        # a lapsed invitation is stored as expired, never as declined
        lapsed = is_past(invitation.expires_at)
        if lapsed:
            values = {"status": InvitationStatusEnum.EXPIRED.value}
        else:
            values = {"status": InvitationStatusEnum.DECLINED.value, "responded_at": utcnow()}
        result = await self.db.execute(
            update(WishlistInvitation)
            .where(
                WishlistInvitation.id == invitation.id,
                WishlistInvitation.status == InvitationStatusEnum.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await self._commit()
            if not lapsed:
                logger.info(
                    "Invitation declined invitation_id=%s by=%s", invitation_id, caller.id if caller else None
                )
        else:
            await self._rollback()
        await self.db.refresh(invitation)
        return invitation

    async def list_for_wishlist(self, wishlist_id: str, caller: Principal) -> list[WishlistInvitation]:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_role(
            self.db, wishlist, caller.id, RoleEnum.ADMIN, "Only the owner or an admin can view invitations"
        )
        result = await self.db.execute(
            select(WishlistInvitation)
            .where(WishlistInvitation.wishlist_id == wishlist.id)
            .order_by(WishlistInvitation.created_at.desc())
        )
        return list(result.scalars().all())
