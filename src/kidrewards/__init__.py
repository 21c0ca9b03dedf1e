"""Kid Rewards: household tasks that earn points and points that buy rewards."""

from .balance import BalanceCalculator
from .exceptions import (
    ConfigurationError,
    ConflictError,
    DuplicateUsernameError,
    ForbiddenError,
    InsufficientPointsError,
    KidRewardsError,
    NotFoundError,
    TooManyAttemptsError,
    UnauthenticatedError,
    UnknownKidError,
    ValidationError,
)
from .models import (
    BalanceReport,
    BalanceStrategy,
    IssuedCredential,
    KidPrincipal,
    KidSession,
    ParentPrincipal,
    Principal,
    RedemptionReceipt,
    Role,
)
from .ops import HealthMonitor, StructuredLogger
from .persistence import KidProfile, KidTask, Redemption, Reward, User
from .security import CredentialCodec, LoginThrottle, PasswordHasher
from .service import RewardsService

__all__ = [
    "BalanceCalculator",
    "BalanceReport",
    "BalanceStrategy",
    "ConfigurationError",
    "ConflictError",
    "CredentialCodec",
    "DuplicateUsernameError",
    "ForbiddenError",
    "HealthMonitor",
    "InsufficientPointsError",
    "IssuedCredential",
    "KidPrincipal",
    "KidProfile",
    "KidRewardsError",
    "KidSession",
    "KidTask",
    "LoginThrottle",
    "NotFoundError",
    "ParentPrincipal",
    "PasswordHasher",
    "Principal",
    "Redemption",
    "RedemptionReceipt",
    "Reward",
    "RewardsService",
    "Role",
    "StructuredLogger",
    "TooManyAttemptsError",
    "UnauthenticatedError",
    "UnknownKidError",
    "User",
    "ValidationError",
]
