"""Error taxonomy shared by every wishlist service.

Services raise these; the HTTP layer maps them onto status codes in one place
(see ``gifttracker.main``). Messages are user visible, so they must never carry
storage details.
"""

from fastapi import status


class WishlistError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(WishlistError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class Forbidden(WishlistError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"


class Conflict(WishlistError):
    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"


class Expired(WishlistError):
    status_code = status.HTTP_410_GONE
    kind = "expired"


class Unauthorized(WishlistError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "unauthorized"


class ValidationError(WishlistError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation_error"


class CascadeDeleteError(RuntimeError):
    """A wishlist cascade could not complete; the transaction was rolled back."""

    def __init__(self, wishlist_id: str) -> None:
        super().__init__(f"Cascading delete failed for wishlist {wishlist_id}")
        self.wishlist_id = wishlist_id
