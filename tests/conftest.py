from pathlib import Path
from typing import Iterator

import pytest
from sqlalchemy.engine import Engine

from kidrewards.balance import BalanceCalculator
from kidrewards.models import BalanceStrategy, ParentPrincipal
from kidrewards.persistence import create_db_and_tables, make_engine
from kidrewards.security import CredentialCodec, PasswordHasher
from kidrewards.service import RewardsService

TEST_SECRET = "test-signing-secret-with-at-least-32-bytes"


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    db_engine = make_engine(f"sqlite:///{tmp_path / 'kidrewards.db'}")
    create_db_and_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def codec() -> CredentialCodec:
    return CredentialCodec(TEST_SECRET)


@pytest.fixture
def hasher() -> PasswordHasher:
    # Low iteration count keeps the suite fast.
    return PasswordHasher(iterations=1_000)


@pytest.fixture
def service(engine: Engine, codec: CredentialCodec, hasher: PasswordHasher) -> RewardsService:
    return RewardsService(engine, codec, hasher=hasher)


@pytest.fixture
def cached_service(engine: Engine, codec: CredentialCodec, hasher: PasswordHasher) -> RewardsService:
    return RewardsService(engine, codec, hasher=hasher, balances=BalanceCalculator(BalanceStrategy.CACHED))


@pytest.fixture
def parent(service: RewardsService) -> ParentPrincipal:
    user = service.register_parent("p1", "secret-one")
    return ParentPrincipal(user_id=user.id)


@pytest.fixture
def other_parent(service: RewardsService) -> ParentPrincipal:
    user = service.register_parent("p2", "secret-two")
    return ParentPrincipal(user_id=user.id)
