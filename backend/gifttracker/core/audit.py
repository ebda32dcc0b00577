"""Audit logging for security relevant wishlist operations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("gifttracker.audit")

_SENSITIVE_KEYS = ("password", "password_hash", "token", "secret", "key", "authorization")


class AuditAction(str, Enum):
    """Audit action types."""
    # Wishlist operations
    WISHLIST_DELETE = "wishlist_delete"

    # Sharing
    SHARE_CREATE = "share_create"
    SHARE_REVOKE = "share_revoke"
    SHARE_PASSWORD_FAILED = "share_password_failed"

    # Membership
    INVITATION_ACCEPT = "invitation_accept"
    COLLABORATOR_REMOVE = "collaborator_remove"
    COLLABORATOR_ROLE_CHANGE = "collaborator_role_change"

    # Rate limit
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        user_id: ID of the principal performing the action
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if user_id is not None:
        event["user_id"] = str(user_id)

    if request:
        client_host = None
        if request.client:
            client_host = request.client.host

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()

        event["ip"] = client_host
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        sanitized = {}
        for key, value in details.items():
            if key in _SENSITIVE_KEYS:
                sanitized[key] = "***REDACTED***"
            else:
                sanitized[key] = value
        event["details"] = sanitized

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_wishlist_action(
    action: AuditAction,
    wishlist_id: str,
    user_id: str | None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Log an operation scoped to one wishlist."""
    event_details: dict[str, Any] = {"wishlist_id": wishlist_id}
    if details:
        event_details.update(details)
    audit_log(action, user_id=user_id, details=event_details, success=success)


def audit_share_password_failed(share_id: str, wishlist_id: str) -> None:
    audit_wishlist_action(
        AuditAction.SHARE_PASSWORD_FAILED,
        wishlist_id,
        None,
        details={"share_id": share_id},
        success=False,
    )


def audit_rate_limit_exceeded(request: Request, endpoint: str, retry_after: int) -> None:
    """Log rate limit exceeded."""
    audit_log(
        AuditAction.RATE_LIMIT_EXCEEDED,
        request=request,
        details={"endpoint": endpoint, "retry_after": retry_after},
        success=False,
    )
