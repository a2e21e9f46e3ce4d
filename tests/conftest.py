"""
Shared test fixtures.

Sets up an isolated SQLite test database so tests never touch
the real database. Tables are created before each test and
dropped after it, so no test data persists.
"""

import os

# Must be set before the application settings are first read
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RETRY_BACKOFF_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from dairy_ledger.main import app
from dairy_ledger.models.base import Base, UnitOfWork, get_db, make_engine


# Same engine setup as development: writers take the SQLite
# lock with BEGIN IMMEDIATE and queue on the busy timeout.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = make_engine(TEST_DATABASE_URL)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    """For tests that need several independent sessions."""
    return TestSessionLocal


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def uow(db_session):
    return UnitOfWork(db_session)


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    The get_db dependency is overridden so the app uses the
    test session instead of the real database.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def lenient_client(db_session):
    """
    A test client that returns 500 responses instead of
    re-raising unhandled server errors.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
