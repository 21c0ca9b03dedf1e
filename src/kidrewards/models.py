"""Domain models used by the Kid Rewards package."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, NoReturn, Optional, Union

if TYPE_CHECKING:  # pragma: no cover
    from .persistence import KidProfile, Redemption


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


class Role(str, Enum):
    """The two kinds of acting identity a credential can assert."""

    PARENT = "Parent"
    KID = "Kid"


class BalanceStrategy(str, Enum):
    """How the balance calculator serves repeated reads."""

    RECOMPUTED = "recomputed"
    CACHED = "cached"


@dataclass(frozen=True, slots=True)
class ParentPrincipal:
    """Caller authenticated with a Parent credential."""

    user_id: str

    @property
    def role(self) -> Role:
        return Role.PARENT


@dataclass(frozen=True, slots=True)
class KidPrincipal:
    """Caller authenticated with a Kid credential minted by ``parent_id``."""

    kid_id: str
    parent_id: Optional[str] = None

    @property
    def role(self) -> Role:
        return Role.KID


Principal = Union[ParentPrincipal, KidPrincipal]


def unexpected_principal(principal: object) -> NoReturn:
    """Fail loudly when a guard meets a principal type it does not know."""

    raise TypeError(f"Unsupported principal type: {type(principal)!r}")


@dataclass(frozen=True, slots=True)
class IssuedCredential:
    """A freshly signed bearer token together with the role it asserts."""

    token: str
    role: Role


@dataclass(frozen=True, slots=True)
class KidSession:
    """Result of a parent entering kid mode for one of their kids."""

    credential: IssuedCredential
    kid: "KidProfile"


@dataclass(frozen=True, slots=True)
class BalanceReport:
    """Spendable points of one kid at the time of the read."""

    kid_id: str
    points: int


@dataclass(frozen=True, slots=True)
class RedemptionReceipt:
    """Outcome of a successful reward redemption."""

    kid_id: str
    new_points: int
    redemption: "Redemption"


__all__ = [
    "BalanceReport",
    "BalanceStrategy",
    "IssuedCredential",
    "KidPrincipal",
    "KidSession",
    "ParentPrincipal",
    "Principal",
    "RedemptionReceipt",
    "Role",
    "unexpected_principal",
    "utcnow",
]
