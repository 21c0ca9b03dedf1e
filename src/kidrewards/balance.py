"""Point balance calculation for kid profiles.

A kid's balance is never stored. It is derived from the source records every
time it is needed::

    balance = sum(points of completed tasks) - sum(cost of redeemed rewards)

Both sums are zero over an empty set. A :class:`BalanceCalculator` built with
:attr:`BalanceStrategy.CACHED` memoises per kid, and the only way a cached
value goes away is the explicit :meth:`BalanceCalculator.invalidate` hook.
"""

from __future__ import annotations

from threading import Lock
from typing import Dict

from sqlalchemy import func
from sqlmodel import Session, select

from .models import BalanceStrategy
from .persistence import KidTask, Redemption, Reward


class BalanceCalculator:
    """Compute spendable points from completed tasks and redemptions."""

    def __init__(self, strategy: BalanceStrategy = BalanceStrategy.RECOMPUTED) -> None:
        self._strategy = strategy
        self._cache: Dict[str, int] = {}
        self._generations: Dict[str, int] = {}
        self._lock = Lock()

    @property
    def strategy(self) -> BalanceStrategy:
        return self._strategy

    def earned(self, session: Session, kid_id: str) -> int:
        total = session.exec(
            select(func.coalesce(func.sum(KidTask.points), 0))
            .where(KidTask.assigned_kid_id == kid_id)
            .where(KidTask.is_complete == True)  # noqa: E712
        ).one()
        return int(total)

    def spent(self, session: Session, kid_id: str) -> int:
        total = session.exec(
            select(func.coalesce(func.sum(Reward.cost), 0))
            .select_from(Redemption)
            .join(Reward, Reward.id == Redemption.reward_id)
            .where(Redemption.kid_id == kid_id)
        ).one()
        return int(total)

    def compute_balance(self, session: Session, kid_id: str) -> int:
        if self._strategy is BalanceStrategy.CACHED:
            with self._lock:
                cached = self._cache.get(kid_id)
                if cached is not None:
                    return cached
                generation = self._generations.get(kid_id, 0)
            balance = self.recompute(session, kid_id)
            with self._lock:
                # An invalidate() that ran while we were reading makes this value stale.
                if self._generations.get(kid_id, 0) == generation:
                    self._cache[kid_id] = balance
            return balance
        if self._strategy is BalanceStrategy.RECOMPUTED:
            return self.recompute(session, kid_id)
        raise ValueError(f"Unsupported balance strategy: {self._strategy!r}")

    def recompute(self, session: Session, kid_id: str) -> int:
        """Always read the source records, bypassing any cache."""

        return self.earned(session, kid_id) - self.spent(session, kid_id)

    def invalidate(self, kid_id: str) -> None:
        """Forget the cached balance for ``kid_id`` after a completion or redemption."""

        with self._lock:
            self._generations[kid_id] = self._generations.get(kid_id, 0) + 1
            self._cache.pop(kid_id, None)

    def last_redemption_sequence(self, session: Session, kid_id: str) -> int:
        latest = session.exec(
            select(func.coalesce(func.max(Redemption.sequence), 0)).where(Redemption.kid_id == kid_id)
        ).one()
        return int(latest)

    @staticmethod
    def is_redeemable(balance: int, cost: int) -> bool:
        return balance >= cost


__all__ = ["BalanceCalculator"]
