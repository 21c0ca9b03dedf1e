from datetime import datetime, timezone

import pytest
from sqlmodel import Session

from kidrewards.balance import BalanceCalculator
from kidrewards.models import BalanceStrategy
from kidrewards.persistence import KidProfile, KidTask, Redemption, Reward, User, open_session


def add_household(session: Session) -> None:
    session.add(User(id="parent-1", username="parent-1", password_hash="x"))
    session.commit()
    session.add(KidProfile(id="ava", parent_id="parent-1", display_name="Ava"))
    session.add(KidProfile(id="ben", parent_id="parent-1", display_name="Ben"))
    session.commit()


def add_task(session: Session, kid_id: str, points: int, *, complete: bool) -> KidTask:
    task = KidTask(
        title=f"{points} point task",
        points=points,
        assigned_kid_id=kid_id,
        created_by_parent_id="parent-1",
        is_complete=complete,
        completed_at=datetime.now(timezone.utc) if complete else None,
    )
    session.add(task)
    session.commit()
    return task


def add_redemption(session: Session, kid_id: str, cost: int, sequence: int) -> Reward:
    reward = Reward(name=f"Reward {cost}", cost=cost)
    session.add(reward)
    session.commit()
    session.add(Redemption(kid_id=kid_id, reward_id=reward.id, sequence=sequence))
    session.commit()
    return reward


def test_balance_is_zero_without_tasks_or_redemptions(engine) -> None:
    calculator = BalanceCalculator()
    with open_session(engine) as session:
        add_household(session)

        assert calculator.earned(session, "ava") == 0
        assert calculator.spent(session, "ava") == 0
        assert calculator.compute_balance(session, "ava") == 0
        assert calculator.last_redemption_sequence(session, "ava") == 0


def test_balance_sums_completed_points_minus_redeemed_costs(engine) -> None:
    calculator = BalanceCalculator()
    with open_session(engine) as session:
        add_household(session)
        add_task(session, "ava", 50, complete=True)
        add_task(session, "ava", 30, complete=True)
        add_task(session, "ava", 500, complete=False)
        add_task(session, "ben", 70, complete=True)
        add_redemption(session, "ava", 20, sequence=1)
        add_redemption(session, "ava", 0, sequence=2)
        add_redemption(session, "ben", 10, sequence=1)

        assert calculator.earned(session, "ava") == 80
        assert calculator.spent(session, "ava") == 20
        assert calculator.compute_balance(session, "ava") == 60
        assert calculator.compute_balance(session, "ben") == 60
        assert calculator.last_redemption_sequence(session, "ava") == 2


def test_out_of_band_overspend_is_reported_not_clamped(engine) -> None:
    calculator = BalanceCalculator()
    with open_session(engine) as session:
        add_household(session)
        add_task(session, "ava", 10, complete=True)
        add_redemption(session, "ava", 25, sequence=1)

        assert calculator.compute_balance(session, "ava") == -15


def test_cached_balance_only_refreshes_through_invalidate(engine) -> None:
    calculator = BalanceCalculator(BalanceStrategy.CACHED)
    with open_session(engine) as session:
        add_household(session)
        add_task(session, "ava", 40, complete=True)
        assert calculator.compute_balance(session, "ava") == 40

        add_task(session, "ava", 10, complete=True)
        assert calculator.compute_balance(session, "ava") == 40
        assert calculator.recompute(session, "ava") == 50

        calculator.invalidate("ava")
        assert calculator.compute_balance(session, "ava") == 50


def test_cached_read_racing_an_invalidate_is_not_stored(engine, monkeypatch) -> None:
    calculator = BalanceCalculator(BalanceStrategy.CACHED)
    real_recompute = calculator.recompute
    raced = []

    def recompute_then_complete_task(session, kid_id):
        balance = real_recompute(session, kid_id)
        if not raced:
            raced.append(kid_id)
            # A completion commits and invalidates after this read but before
            # the computed value is stored.
            with open_session(engine) as other:
                add_task(other, kid_id, 50, complete=True)
            calculator.invalidate(kid_id)
        return balance

    monkeypatch.setattr(calculator, "recompute", recompute_then_complete_task)

    with open_session(engine) as session:
        add_household(session)
        assert calculator.compute_balance(session, "ava") == 0
        assert calculator.compute_balance(session, "ava") == 50
        assert calculator.compute_balance(session, "ava") == 50


def test_recomputed_strategy_never_caches(engine) -> None:
    calculator = BalanceCalculator()
    assert calculator.strategy is BalanceStrategy.RECOMPUTED
    with open_session(engine) as session:
        add_household(session)
        assert calculator.compute_balance(session, "ava") == 0
        add_task(session, "ava", 15, complete=True)
        assert calculator.compute_balance(session, "ava") == 15


@pytest.mark.parametrize(
    ("balance", "cost", "expected"),
    [(100, 100, True), (99, 100, False), (0, 0, True), (5, 0, True), (-1, 0, False)],
)
def test_redemption_eligibility(balance: int, cost: int, expected: bool) -> None:
    assert BalanceCalculator.is_redeemable(balance, cost) is expected
