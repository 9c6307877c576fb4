"""Shared test fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from npc_vibes.config import Settings
from npc_vibes.core.entities import ClientContext, UserInfo
from npc_vibes.db.database import get_db
from npc_vibes.db.models import Base
from npc_vibes.main import app
from npc_vibes.runtime import build_runtime
from npc_vibes.services.transport import BroadcastHub

TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(bind=TEST_ENGINE, autocommit=False, autoflush=False)


def _override_get_db():
    db = TestSession()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = _override_get_db

DEFAULT_USERS = [
    UserInfo(user_id="gm", name="Game Master", is_gm=True),
    UserInfo(user_id="player1", name="Player One"),
]


class SequenceRng:
    """randint가 정해진 값을 차례로 돌려주는 RNG (끝나면 처음부터)"""

    def __init__(self, values):
        self._values = list(values)
        self.calls = 0

    def randint(self, a, b):
        value = self._values[self.calls % len(self._values)]
        self.calls += 1
        return value


class FakeClock:
    """수동으로 진행하는 monotonic 시계"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def db_session() -> Session:
    """Raw database session on a fresh in-memory schema."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture()
def make_runtime(db_session, hub, clock):
    """같은 DB·허브를 공유하는 런타임 생성기"""
    built = []

    def _make(
        rolls=(10,),
        user_id="gm",
        is_gm=True,
        users=None,
        backend=None,
        messenger=None,
    ):
        runtime = build_runtime(
            Settings(),
            backend=backend,
            db_session=db_session,
            hub=hub,
            client=ClientContext(user_id=user_id, is_gm=is_gm),
            rng=SequenceRng(rolls),
            clock=clock,
            messenger=messenger,
        )
        runtime.registry.set_users(DEFAULT_USERS if users is None else users)
        built.append(runtime)
        return runtime

    yield _make
    for runtime in built:
        runtime.transport.close()


@pytest.fixture()
def runtime(make_runtime):
    """GM 클라이언트 런타임 (굴림값 10 고정 = none)"""
    return make_runtime()


@pytest.fixture()
def client(runtime) -> TestClient:
    """FastAPI TestClient wired to an in-memory SQLite database."""
    app.state.runtime = runtime
    return TestClient(app)
