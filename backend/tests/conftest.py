import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("WIKI_PERMISSION_REVALIDATE_ON_READ", "false")
os.environ.setdefault("STORAGE_BACKEND", "disk")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import CurrentUser
from app.db.base import Base
from app.db.models import User, UserRole
from app.services.directory_client import StaticDirectoryProvider


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture()
def db(engine):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)
    with factory() as session:
        yield session


@pytest.fixture()
def admin(db) -> CurrentUser:
    user = User(username="wiki-admin", password_hash="x", role=UserRole.ADMIN, is_active=True)
    db.add(user)
    db.commit()
    return CurrentUser(id=user.id, username=user.username, role=user.role)


@pytest.fixture()
def directory() -> StaticDirectoryProvider:
    return StaticDirectoryProvider(
        department_ids=["dept-1", "dept-2", "dept-3"],
        rank_ids=["rank-1", "rank-2"],
        position_ids=["pos-1"],
    )


@pytest.fixture()
def client(db, admin, directory, tmp_path):
    fastapi_testclient = pytest.importorskip("fastapi.testclient")

    from app.api.v1.wiki_serializers import get_directory_provider
    from app.core.auth import get_current_user
    from app.core.config import get_settings
    from app.db.session import get_db
    from app.main import app

    def _get_test_db():
        yield db

    settings = get_settings()
    prev_root = settings.storage_disk_root
    settings.storage_disk_root = str(tmp_path / "storage")

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_current_user] = lambda: admin
    app.dependency_overrides[get_directory_provider] = lambda: directory
    try:
        yield fastapi_testclient.TestClient(app)
    finally:
        app.dependency_overrides.clear()
        settings.storage_disk_root = prev_root
