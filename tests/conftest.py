import os

os.environ.setdefault("DATABASE_URI", "sqlite://")
os.environ.setdefault("RUN_MIGRATIONS", "false")
os.environ.setdefault("LOG_FORMAT", "console")

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import sessionmaker

from reaction_engine.db import Base, create_db_engine, get_db
from reaction_engine.models import User
from reaction_engine.utils.auth import create_token

USERS = [
    (1, "ada", "Ada Lovelace"),
    (2, "grace", "Grace Hopper"),
    (3, "alan", "Alan Turing"),
    (4, "edsger", "Edsger Dijkstra"),
    (5, "barbara", None),
]


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'reactions.db'}", timeout=5)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def users(session_factory):
    with session_factory() as session:
        session.add_all(
            [User(id=uid, username=username, name=name) for uid, username, name in USERS]
        )
        session.commit()
    return [uid for uid, _, _ in USERS]


@pytest.fixture
def db(session_factory, users):
    """A session for single-threaded tests. Close it before starting other writers."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory, users):
    from reaction_engine.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with_client = TestClient(app)
    yield with_client
    app.dependency_overrides.clear()


@pytest.fixture
def token_for():
    def _token_for(user_id: int):
        expire_date = datetime.now(timezone.utc) + timedelta(hours=1)
        return create_token(f"user{user_id}", user_id, expire_date)

    return _token_for


@pytest.fixture
def login(client, token_for):
    """Sets the auth cookie for the given user id on the test client."""

    def _login(user_id: int):
        client.cookies.set("auth_token", token_for(user_id))
        return client

    return _login


@pytest.fixture
def unreachable_session_factory(tmp_path):
    """Sessions on a database file whose directory does not exist."""
    engine = create_db_engine(
        f"sqlite:///{tmp_path / 'missing' / 'reactions.db'}", timeout=0.1
    )
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
