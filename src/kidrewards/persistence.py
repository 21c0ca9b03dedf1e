"""Persistence and SQLModel definitions for Kid Rewards."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import DateTime, UniqueConstraint, event
from sqlalchemy.engine import Engine
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .models import Role, utcnow
from .security import PasswordHasher

DEMO_PARENT_USERNAME = "parent1"
DEMO_PARENT_PASSWORD = "ChangeMe123!"


def _new_id() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """Store datetimes as UTC and hand them back timezone-aware.

    SQLite keeps no offset, so values read from it are tagged as UTC again.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes are not stored; pass an aware UTC value.")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
class User(SQLModel, table=True):
    __tablename__ = "app_user"

    id: str = Field(default_factory=_new_id, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Role.PARENT.value
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class KidProfile(SQLModel, table=True):
    __tablename__ = "kid_profile"

    id: str = Field(default_factory=_new_id, primary_key=True)
    parent_id: str = Field(foreign_key="app_user.id", index=True)
    display_name: str


class KidTask(SQLModel, table=True):
    __tablename__ = "kid_task"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    points: int = 0
    assigned_kid_id: str = Field(foreign_key="kid_profile.id", index=True)
    created_by_parent_id: str = Field(foreign_key="app_user.id", index=True)
    is_complete: bool = False
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)


class Reward(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    cost: int = 0


class Redemption(SQLModel, table=True):
    # ``sequence`` numbers a kid's redemptions; the unique pair rejects a
    # second writer that checked eligibility against the same balance.
    __table_args__ = (UniqueConstraint("kid_id", "sequence", name="uq_redemption_kid_sequence"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    kid_id: str = Field(foreign_key="kid_profile.id", index=True)
    reward_id: int = Field(foreign_key="reward.id")
    sequence: int = 1
    redeemed_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ---------------------------------------------------------------------------
# Engine, sessions & schema
# ---------------------------------------------------------------------------
def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, echo=echo, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def open_session(engine: Engine) -> Session:
    return Session(engine, expire_on_commit=False)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------
def seed_demo_data(
    session: Session,
    *,
    hasher: PasswordHasher,
    parent_password: str = DEMO_PARENT_PASSWORD,
) -> User:
    """Create the demo household. Each group is only seeded when absent."""

    parent = session.exec(
        select(User).where(User.username == DEMO_PARENT_USERNAME).where(User.role == Role.PARENT.value)
    ).first()
    if parent is None:
        parent = User(username=DEMO_PARENT_USERNAME, password_hash=hasher.hash(parent_password))
        session.add(parent)
        session.commit()

    has_kids = session.exec(select(KidProfile).where(KidProfile.parent_id == parent.id)).first()
    if has_kids is None:
        session.add(KidProfile(id="kid-1", parent_id=parent.id, display_name="Kid 1"))
        session.add(KidProfile(id="kid-2", parent_id=parent.id, display_name="Kid 2"))
        session.commit()

    if session.exec(select(Reward)).first() is None:
        session.add(Reward(name="Ice Cream", cost=100))
        session.add(Reward(name="Extra Screen Time", cost=50))
        session.add(Reward(name="Movie Night", cost=150))
        session.commit()

    if session.exec(select(KidTask)).first() is None:
        for title, kid_id in (("Brush Teeth", "kid-1"), ("Go to School", "kid-1"), ("Homework", "kid-2")):
            session.add(
                KidTask(title=title, points=50, assigned_kid_id=kid_id, created_by_parent_id=parent.id)
            )
        session.commit()
    return parent


__all__ = [
    "DEMO_PARENT_PASSWORD",
    "DEMO_PARENT_USERNAME",
    "KidProfile",
    "KidTask",
    "Redemption",
    "Reward",
    "UTCDateTime",
    "User",
    "create_db_and_tables",
    "make_engine",
    "open_session",
    "seed_demo_data",
]
