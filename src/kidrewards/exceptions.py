"""Custom exception hierarchy for the Kid Rewards package."""

from __future__ import annotations


class KidRewardsError(Exception):
    """Base class for all Kid Rewards specific errors."""

    kind = "error"


class ConfigurationError(KidRewardsError):
    """Raised when the application is started with an unusable configuration."""

    kind = "configuration"


class UnauthenticatedError(KidRewardsError):
    """Raised when a credential is missing, expired or cannot be verified."""

    kind = "unauthenticated"


class TooManyAttemptsError(UnauthenticatedError):
    """Raised when a username is locked out after repeated failed logins."""

    kind = "too_many_attempts"


class ForbiddenError(KidRewardsError):
    """Raised when the caller's credential may not act on the target."""

    kind = "forbidden"


class NotFoundError(KidRewardsError):
    """Raised when a referenced entity does not exist for the caller."""

    kind = "not_found"


class ValidationError(KidRewardsError):
    """Raised for caller-correctable input problems."""

    kind = "validation"


class UnknownKidError(ValidationError):
    """Raised when a kid id does not belong to the calling parent."""

    def __init__(self, kid_id: str) -> None:
        self.kid_id = kid_id
        super().__init__("Unknown kidId for this parent.")


class InsufficientPointsError(ValidationError):
    """Raised when a redemption would cost more than the kid's balance."""

    def __init__(self, balance: int, cost: int) -> None:
        self.balance = balance
        self.cost = cost
        super().__init__("Not enough points.")


class DuplicateUsernameError(ValidationError):
    """Raised when registering a parent whose username is already taken."""


class ConflictError(KidRewardsError):
    """Raised when a concurrent write invalidated the caller's check."""

    kind = "conflict"
