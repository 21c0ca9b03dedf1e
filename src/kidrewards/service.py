"""High level service coordinating parents, kids, tasks and rewards."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .balance import BalanceCalculator
from .exceptions import (
    ConflictError,
    DuplicateUsernameError,
    ForbiddenError,
    InsufficientPointsError,
    NotFoundError,
    TooManyAttemptsError,
    UnauthenticatedError,
    UnknownKidError,
    ValidationError,
)
from .models import (
    BalanceReport,
    IssuedCredential,
    KidPrincipal,
    KidSession,
    ParentPrincipal,
    Principal,
    RedemptionReceipt,
    Role,
    unexpected_principal,
    utcnow,
)
from .ops import StructuredLogger
from .persistence import KidProfile, KidTask, Redemption, Reward, User, open_session
from .security import CredentialCodec, LoginThrottle, PasswordHasher


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} is required.")
    return cleaned


def _require_points(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be a whole number.")
    if value < 0:
        raise ValidationError(f"{field_name} cannot be negative.")
    return value


class RewardsService:
    """Run every core operation behind its role and ownership guard.

    Each public method opens its own session, so a call either commits all of
    its writes or none of them.
    """

    __slots__ = (
        "_engine",
        "_codec",
        "_hasher",
        "_balances",
        "_throttle",
        "_logger",
        "_clock",
    )

    def __init__(
        self,
        engine: Engine,
        codec: CredentialCodec,
        *,
        hasher: Optional[PasswordHasher] = None,
        balances: Optional[BalanceCalculator] = None,
        throttle: Optional[LoginThrottle] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._codec = codec
        self._hasher = hasher or PasswordHasher()
        self._balances = balances or BalanceCalculator()
        self._throttle = throttle or LoginThrottle()
        self._logger = logger or StructuredLogger()
        self._clock = clock

    @property
    def balances(self) -> BalanceCalculator:
        return self._balances

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    def _session(self) -> Session:
        return open_session(self._engine)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------
    @staticmethod
    def _require_principal(principal: Optional[Principal]) -> Principal:
        if principal is None:
            raise UnauthenticatedError("Authentication required.")
        if isinstance(principal, (ParentPrincipal, KidPrincipal)):
            return principal
        unexpected_principal(principal)

    def _require_parent(self, principal: Optional[Principal]) -> ParentPrincipal:
        principal = self._require_principal(principal)
        if isinstance(principal, ParentPrincipal):
            return principal
        if isinstance(principal, KidPrincipal):
            raise ForbiddenError("This action requires a Parent credential.")
        unexpected_principal(principal)

    def _require_kid(self, principal: Optional[Principal]) -> KidPrincipal:
        principal = self._require_principal(principal)
        if isinstance(principal, KidPrincipal):
            return principal
        if isinstance(principal, ParentPrincipal):
            raise ForbiddenError("This action requires a Kid credential.")
        unexpected_principal(principal)

    @staticmethod
    def _owned_kid(session: Session, parent_id: str, kid_id: Optional[str]) -> Optional[KidProfile]:
        if not kid_id:
            return None
        return session.exec(
            select(KidProfile).where(KidProfile.id == kid_id).where(KidProfile.parent_id == parent_id)
        ).first()

    # ------------------------------------------------------------------
    # Parents & credentials
    # ------------------------------------------------------------------
    def authenticate(self, token: Optional[str]) -> Principal:
        """Resolve a bearer token to the principal it was issued for."""

        if not token:
            raise UnauthenticatedError("Authentication required.")
        return self._codec.decode(token)

    def register_parent(self, username: str, password: str) -> User:
        username = _require_text(username, "Username")
        if not password:
            raise ValidationError("Password is required.")
        with self._session() as session:
            existing = session.exec(
                select(User).where(User.username == username).where(User.role == Role.PARENT.value)
            ).first()
            if existing is not None:
                raise DuplicateUsernameError(f"Username '{username}' is already taken.")
            user = User(username=username, password_hash=self._hasher.hash(password), role=Role.PARENT.value)
            session.add(user)
            session.commit()
            session.refresh(user)
        self._logger.log("parent_registered", user_id=user.id)
        return user

    def login(self, username: str, password: str, *, at: Optional[datetime] = None) -> IssuedCredential:
        if self._throttle.is_locked(username, at=at):
            self._logger.log("login_locked", username=username)
            raise TooManyAttemptsError("Too many failed attempts. Try again later.")
        with self._session() as session:
            user = session.exec(
                select(User).where(User.username == username).where(User.role == Role.PARENT.value)
            ).first()
        if user is None or not self._hasher.verify(user.password_hash, password or ""):
            self._throttle.record_attempt(username, success=False, at=at)
            self._logger.log("login_failed", username=username)
            raise UnauthenticatedError("Invalid username or password.")
        self._throttle.record_attempt(username, success=True, at=at)
        credential = self._codec.issue_parent(user.id, at=at)
        self._logger.log("parent_login", user_id=user.id)
        return credential

    def mint_kid_session(self, principal: Optional[Principal], kid_id: str) -> KidSession:
        parent = self._require_parent(principal)
        with self._session() as session:
            kid = self._owned_kid(session, parent.user_id, kid_id)
        if kid is None:
            raise NotFoundError("Kid not found for this parent.")
        credential = self._codec.issue_kid(kid.id, parent.user_id)
        self._logger.log("kid_session_minted", parent_id=parent.user_id, kid_id=kid.id)
        return KidSession(credential=credential, kid=kid)

    # ------------------------------------------------------------------
    # Kid profiles
    # ------------------------------------------------------------------
    def list_kids(self, principal: Optional[Principal]) -> List[KidProfile]:
        parent = self._require_parent(principal)
        with self._session() as session:
            return list(
                session.exec(
                    select(KidProfile)
                    .where(KidProfile.parent_id == parent.user_id)
                    .order_by(KidProfile.display_name, KidProfile.id)
                ).all()
            )

    def create_kid(self, principal: Optional[Principal], display_name: Optional[str]) -> KidProfile:
        parent = self._require_parent(principal)
        name = _require_text(display_name, "DisplayName")
        kid = KidProfile(parent_id=parent.user_id, display_name=name)
        with self._session() as session:
            session.add(kid)
            session.commit()
            session.refresh(kid)
        self._logger.log("kid_created", parent_id=parent.user_id, kid_id=kid.id)
        return kid

    def rename_kid(self, principal: Optional[Principal], kid_id: str, display_name: Optional[str]) -> KidProfile:
        parent = self._require_parent(principal)
        name = _require_text(display_name, "DisplayName")
        with self._session() as session:
            kid = self._owned_kid(session, parent.user_id, kid_id)
            if kid is None:
                raise NotFoundError("Kid not found for this parent.")
            kid.display_name = name
            session.add(kid)
            session.commit()
            session.refresh(kid)
        self._logger.log("kid_renamed", parent_id=parent.user_id, kid_id=kid.id)
        return kid

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    def list_tasks(self, principal: Optional[Principal], kid_id: Optional[str] = None) -> List[KidTask]:
        principal = self._require_principal(principal)
        query = select(KidTask).order_by(KidTask.id)
        with self._session() as session:
            if isinstance(principal, KidPrincipal):
                query = query.where(KidTask.assigned_kid_id == principal.kid_id)
            elif isinstance(principal, ParentPrincipal):
                if kid_id:
                    if self._owned_kid(session, principal.user_id, kid_id) is None:
                        raise UnknownKidError(kid_id)
                    query = query.where(KidTask.assigned_kid_id == kid_id)
                else:
                    query = query.where(KidTask.created_by_parent_id == principal.user_id)
            else:
                unexpected_principal(principal)
            return list(session.exec(query).all())

    def create_task(
        self,
        principal: Optional[Principal],
        title: Optional[str],
        points: int,
        assigned_kid_id: str,
    ) -> KidTask:
        parent = self._require_parent(principal)
        title = _require_text(title, "Title")
        points = _require_points(points, "Points")
        with self._session() as session:
            if self._owned_kid(session, parent.user_id, assigned_kid_id) is None:
                raise UnknownKidError(assigned_kid_id)
            task = KidTask(
                title=title,
                points=points,
                assigned_kid_id=assigned_kid_id,
                created_by_parent_id=parent.user_id,
            )
            session.add(task)
            session.commit()
            session.refresh(task)
        self._logger.log("task_created", parent_id=parent.user_id, task_id=task.id, kid_id=assigned_kid_id)
        return task

    def complete_task(self, principal: Optional[Principal], task_id: int, *, at: Optional[datetime] = None) -> KidTask:
        kid = self._require_kid(principal)
        with self._session() as session:
            task = session.get(KidTask, task_id)
            if task is None:
                raise NotFoundError("Task not found.")
            if task.assigned_kid_id != kid.kid_id:
                raise ForbiddenError("This task is assigned to another kid.")
            if task.is_complete:
                return task
            task.is_complete = True
            task.completed_at = at or self._clock()
            session.add(task)
            session.commit()
            session.refresh(task)
        self._balances.invalidate(kid.kid_id)
        self._logger.log("task_completed", kid_id=kid.kid_id, task_id=task.id, points=task.points)
        return task

    def delete_task(self, principal: Optional[Principal], task_id: int) -> None:
        parent = self._require_parent(principal)
        with self._session() as session:
            task = session.get(KidTask, task_id)
            if task is None:
                raise NotFoundError("Task not found.")
            if task.created_by_parent_id != parent.user_id:
                raise ForbiddenError("Only the parent who created a task may delete it.")
            kid_id = task.assigned_kid_id
            session.delete(task)
            session.commit()
        self._balances.invalidate(kid_id)
        self._logger.log("task_deleted", parent_id=parent.user_id, task_id=task_id)

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------
    def get_balance(self, principal: Optional[Principal], kid_id: Optional[str] = None) -> BalanceReport:
        principal = self._require_principal(principal)
        with self._session() as session:
            if isinstance(principal, KidPrincipal):
                effective_kid_id = principal.kid_id
            elif isinstance(principal, ParentPrincipal):
                if not kid_id:
                    raise ValidationError("kidId is required for parent.")
                if self._owned_kid(session, principal.user_id, kid_id) is None:
                    raise UnknownKidError(kid_id)
                effective_kid_id = kid_id
            else:
                unexpected_principal(principal)
            points = self._balances.compute_balance(session, effective_kid_id)
        return BalanceReport(kid_id=effective_kid_id, points=points)

    # ------------------------------------------------------------------
    # Rewards & redemptions
    # ------------------------------------------------------------------
    def list_rewards(self, principal: Optional[Principal]) -> List[Reward]:
        self._require_principal(principal)
        with self._session() as session:
            return list(session.exec(select(Reward).order_by(Reward.id)).all())

    def create_reward(self, principal: Optional[Principal], name: Optional[str], cost: int) -> Reward:
        parent = self._require_parent(principal)
        reward = Reward(name=_require_text(name, "Name"), cost=_require_points(cost, "Cost"))
        with self._session() as session:
            session.add(reward)
            session.commit()
            session.refresh(reward)
        self._logger.log("reward_created", parent_id=parent.user_id, reward_id=reward.id, cost=reward.cost)
        return reward

    def redeem_reward(
        self,
        principal: Optional[Principal],
        reward_id: int,
        *,
        at: Optional[datetime] = None,
    ) -> RedemptionReceipt:
        """Spend ``reward.cost`` points of the calling kid.

        The eligibility check is repeated inside the transaction that inserts
        the redemption. A redemption committed concurrently for the same kid
        either takes the same ``sequence`` (unique violation) or drives the
        re-checked balance negative; both abort this one with ``ConflictError``.
        """

        kid = self._require_kid(principal)
        with self._session() as session:
            if session.get(KidProfile, kid.kid_id) is None:
                raise NotFoundError("Kid not found.")
            reward = session.get(Reward, reward_id)
            if reward is None:
                raise NotFoundError("Reward not found.")

            balance = self._balances.recompute(session, kid.kid_id)
            sequence = self._balances.last_redemption_sequence(session, kid.kid_id) + 1
            if not self._balances.is_redeemable(balance, reward.cost):
                raise InsufficientPointsError(balance, reward.cost)

            redemption = Redemption(
                kid_id=kid.kid_id,
                reward_id=reward.id,
                sequence=sequence,
                redeemed_at=at or self._clock(),
            )
            session.add(redemption)
            try:
                session.flush()
            except IntegrityError as exc:
                session.rollback()
                self._conflict(kid.kid_id, reward.id, "sequence_taken")
                raise ConflictError("Another redemption was recorded first. Please retry.") from exc

            if self._balances.recompute(session, kid.kid_id) < 0:
                session.rollback()
                self._conflict(kid.kid_id, reward.id, "balance_changed")
                raise ConflictError("Points changed while redeeming. Please retry.")

            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                self._conflict(kid.kid_id, reward.id, "sequence_taken")
                raise ConflictError("Another redemption was recorded first. Please retry.") from exc
            session.refresh(redemption)

        self._balances.invalidate(kid.kid_id)
        new_points = balance - reward.cost
        self._logger.log(
            "reward_redeemed",
            kid_id=kid.kid_id,
            reward_id=reward.id,
            cost=reward.cost,
            new_points=new_points,
        )
        return RedemptionReceipt(kid_id=kid.kid_id, new_points=new_points, redemption=redemption)

    def _conflict(self, kid_id: str, reward_id: Optional[int], reason: str) -> None:
        self._balances.invalidate(kid_id)
        self._logger.log("redemption_conflict", kid_id=kid_id, reward_id=reward_id, reason=reason)


__all__ = ["RewardsService"]
