import logging
from datetime import datetime

from sqlalchemy import select

from gifttracker.core.audit import AuditAction, audit_wishlist_action
from gifttracker.core.errors import Conflict, Forbidden, NotFound, ValidationError
from gifttracker.models.models import RoleEnum, Wishlist, WishlistCollaborator
from gifttracker.services.access import Principal, load_wishlist, membership_role, require_read
from gifttracker.services.base import BaseService

logger = logging.getLogger("gifttracker.collaborators")


class CollaboratorRegistry(BaseService):
    """Role assignments between users and a wishlist.

    The owner is implied by ``Wishlist.owner_id`` and never stored here.
    """

    async def _load_target(self, wishlist: Wishlist, collaborator_id: str) -> WishlistCollaborator:
        target = await self.db.scalar(
            select(WishlistCollaborator).where(
                WishlistCollaborator.id == collaborator_id,
                WishlistCollaborator.wishlist_id == wishlist.id,
            )
        )
        if target is None:
            if collaborator_id == wishlist.owner_id:
                raise Forbidden("The owner cannot be changed or removed")
            raise NotFound("Collaborator not found")
        return target

    async def _caller_outranks(self, wishlist: Wishlist, caller: Principal, target: WishlistCollaborator) -> RoleEnum:
        caller_role = await membership_role(self.db, wishlist, caller.id)
        if caller_role is None:
            raise Forbidden("You are not a member of this wishlist")
        if caller_role is not RoleEnum.OWNER and not caller_role > RoleEnum(target.role):
            raise Forbidden("You need a higher role than this collaborator")
        return caller_role

    async def stage_member(
        self,
        wishlist: Wishlist,
        user_id: str,
        role: RoleEnum,
        *,
        user_name: str | None = None,
        user_email: str | None = None,
        invited_by: str | None = None,
        invited_at: datetime | None = None,
    ) -> WishlistCollaborator:
        """Validate and stage a membership row on the current unit of work."""
        if not role.assignable:
            raise ValidationError("owner role cannot be assigned")
        if user_id == wishlist.owner_id:
            raise Conflict("The owner is already a member of this wishlist")
        existing = await self.db.scalar(
            select(WishlistCollaborator.id).where(
                WishlistCollaborator.wishlist_id == wishlist.id,
                WishlistCollaborator.user_id == user_id,
            )
        )
        if existing is not None:
            raise Conflict("User is already a collaborator on this wishlist")
        collaborator = WishlistCollaborator(
            wishlist_id=wishlist.id,
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            role=role.value,
            invited_by=invited_by,
            invited_at=invited_at,
        )
        self.db.add(collaborator)
        return collaborator

    async def add(
        self,
        wishlist_id: str,
        user_id: str,
        role: RoleEnum,
        *,
        actor: Principal | None = None,
        user_name: str | None = None,
        user_email: str | None = None,
    ) -> WishlistCollaborator:
        async with self.locks.hold(wishlist_id):
            wishlist = await load_wishlist(self.db, wishlist_id)
            collaborator = await self.stage_member(
                wishlist,
                user_id,
                role,
                user_name=user_name,
                user_email=user_email,
                invited_by=actor.id if actor else None,
            )
            self.activity.record(
                wishlist.id,
                actor or user_id,
                "collaborator_added",
                "collaborator",
                user_id,
                user_name or user_email or user_id,
            )
            await self._commit()
        return collaborator

    async def remove(self, wishlist_id: str, collaborator_id: str, caller: Principal) -> None:
        async with self.locks.hold(wishlist_id):
            wishlist = await load_wishlist(self.db, wishlist_id)
            target = await self._load_target(wishlist, collaborator_id)
            await self._caller_outranks(wishlist, caller, target)
            removed_user = target.user_id
            label = target.user_name or target.user_email or target.user_id
            await self.db.delete(target)
            self.activity.record(wishlist.id, caller, "collaborator_removed", "collaborator", removed_user, label)
            await self._commit()
        audit_wishlist_action(
            AuditAction.COLLABORATOR_REMOVE, wishlist_id, caller.id, details={"removed_user_id": removed_user}
        )

    async def update_role(
        self, wishlist_id: str, collaborator_id: str, new_role: RoleEnum, caller: Principal
    ) -> WishlistCollaborator:
        if not new_role.assignable:
            raise ValidationError("owner role cannot be assigned")
        async with self.locks.hold(wishlist_id):
            wishlist = await load_wishlist(self.db, wishlist_id)
            target = await self._load_target(wishlist, collaborator_id)
            caller_role = await self._caller_outranks(wishlist, caller, target)
            if caller_role is not RoleEnum.OWNER and not new_role < caller_role:
                raise Forbidden("You cannot grant a role equal to or above your own")
            previous = target.role
            target.role = new_role.value
            self.activity.record(
                wishlist.id,
                caller,
                "role_updated",
                "collaborator",
                target.user_id,
                f"{target.user_name or target.user_id}: {previous} -> {new_role.value}",
            )
            await self._commit()
        await self.db.refresh(target)
        audit_wishlist_action(
            AuditAction.COLLABORATOR_ROLE_CHANGE,
            wishlist_id,
            caller.id,
            details={"user_id": target.user_id, "from": previous, "to": new_role.value},
        )
        return target

    async def list_for(self, wishlist_id: str, viewer: Principal) -> list[WishlistCollaborator]:
        wishlist = await load_wishlist(self.db, wishlist_id)
        await require_read(self.db, wishlist, viewer.id)
        result = await self.db.execute(
            select(WishlistCollaborator)
            .where(WishlistCollaborator.wishlist_id == wishlist.id)
            .order_by(WishlistCollaborator.joined_at.asc())
        )
        return list(result.scalars().all())
