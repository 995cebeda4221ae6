"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests. Every
test gets its own owner (user + token), so owner-scoped queries never see
rows created by other tests.
"""
import os
import uuid

SQLITE_URL = "sqlite:///./test_todo.db"
os.environ["DATABASE_URL"] = SQLITE_URL

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.db.base import Base, get_db, make_engine
from app.main import app
from app.models.task import Task, TaskStatus, TaskType
from app.models.user import User
from app.services import periodic as periodic_service
from app.services.periodic_stats import reset_capabilities

engine = make_engine(SQLITE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_capabilities()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def owner(db) -> User:
    token = uuid.uuid4().hex
    user = User(username=f"user-{token[:12]}", api_token=token)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def other_owner(db) -> User:
    token = uuid.uuid4().hex
    user = User(username=f"other-{token[:12]}", api_token=token)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def auth_headers(owner) -> dict:
    return {"Authorization": f"Bearer {owner.api_token}"}


@pytest.fixture()
def make_task(db, owner):
    """Insert a Task directly (task CRUD lives outside this service)."""
    def _make(
        title: str = "Run",
        task_type: str = TaskType.periodic,
        status: str = TaskStatus.pending,
        user: User | None = None,
    ) -> Task:
        task = Task(
            user_id=(user or owner).id,
            title=title,
            task_type=task_type,
            status=status,
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        return task
    return _make


@pytest.fixture()
def make_periodic(db, owner, make_task):
    """Create a periodic Task plus its recurrence definition."""
    def _make(period_type: str = "daily", **kwargs):
        status = kwargs.pop("status", TaskStatus.pending)
        task = make_task(title=kwargs.pop("title", f"{period_type} task"), status=status)
        return periodic_service.create_periodic_task(
            db=db,
            owner_id=owner.id,
            task_id=task.id,
            period_type=period_type,
            **kwargs,
        )
    return _make
