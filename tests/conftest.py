import os

# Point the app at an in-memory database before salonbook.database is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["DEFAULT_TIMEZONE"] = "UTC"
os.environ["DEFAULT_MIN_NOTICE_HOURS"] = "0"
os.environ["DEFAULT_AUTO_CONFIRM"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from salonbook.database import Base, get_db  # noqa: E402
from salonbook.domain.scheduling.clock import FixedClock  # noqa: E402
from salonbook.domain.scheduling.router import get_clock  # noqa: E402
from salonbook.domain.scheduling.service import SchedulingService  # noqa: E402
from salonbook.main import app  # noqa: E402

from .factories import NOW  # noqa: E402


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def service(db, clock) -> SchedulingService:
    return SchedulingService(db, clock)


@pytest.fixture
def client(db, clock):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
