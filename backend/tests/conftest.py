import io
import os
import sys
import tempfile
import threading
import time
import uuid
import zipfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Settings are read at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="gamehost-media-"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
os.environ.setdefault("CORS_ALLOW_ORIGINS", "http://testserver")

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from gamehost.db.base import Base
from gamehost.db import session as session_module
from gamehost.main import create_app

# Import models so that they are registered in Base.metadata before create_all.
import gamehost.models  # noqa: F401
from gamehost.core.config import settings
from gamehost.core.security import create_access_token
from gamehost.models.game import Game
from gamehost.models.user import User, UserRole


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.RLock()

    def ping(self):
        return True

    def _now(self) -> float:
        return time.time()

    def _get_entry(self, key: str):
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value, exp

    def get(self, key: str):
        with self._lock:
            entry = self._get_entry(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        with self._lock:
            if nx and self._get_entry(key) is not None:
                return None
            exp = (self._now() + int(ex)) if ex else None
            self._data[key] = (str(value), exp)
            return True

    def delete(self, key: str):
        with self._lock:
            return 1 if self._data.pop(key, None) is not None else 0

    def incr(self, key: str):
        with self._lock:
            entry = self._get_entry(key)
            n = int(entry[0] if entry else 0) + 1
            exp = entry[1] if entry else None
            self._data[key] = (str(n), exp)
            return n

    def expire(self, key: str, seconds: int):
        with self._lock:
            entry = self._get_entry(key)
            if not entry:
                return False
            value, _ = entry
            self._data[key] = (value, self._now() + int(seconds))
            return True

    def ttl(self, key: str):
        with self._lock:
            entry = self._get_entry(key)
            if not entry:
                return -2
            _, exp = entry
            if exp is None:
                return -1
            return max(0, int(exp - self._now()))

    def flushall(self):
        with self._lock:
            self._data.clear()


# Configure test DB (SQLite in-memory) at import time so all tests importing
# gamehost.db.session.SessionLocal will get the patched version.
_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(bind=_engine)
session_module.engine = _engine
session_module.SessionLocal = session_module.sessionmaker(autocommit=False, autoflush=False, bind=_engine)


# Stub Redis at import time (rate limiting, extraction locks, cron locks).
_mem_redis = _MemoryRedis()
import gamehost.core.redis_client as redis_client_module

redis_client_module.get_redis = lambda: _mem_redis

import gamehost.core.rate_limit as rate_limit_module
rate_limit_module.get_redis = lambda: _mem_redis

import gamehost.routers.health as health_router_module
health_router_module.get_redis = lambda: _mem_redis


@pytest.fixture()
def mem_redis():
    return _mem_redis


@pytest.fixture(autouse=True)
def _isolated_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "media_root", tmp_path / "media")
    monkeypatch.setattr(settings, "extract_root", tmp_path / "extract")
    _mem_redis.flushall()
    yield


@pytest.fixture(scope="session")
def client():
    app = create_app()

    # Ensure app dependencies use our session factory.
    def _get_db_override():
        db = session_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[session_module.get_db] = _get_db_override
    return TestClient(app)


@pytest.fixture()
def db():
    with session_module.SessionLocal() as session:
        yield session


def make_user(role: UserRole = UserRole.developer) -> User:
    with session_module.SessionLocal() as db:
        user = User(name=f"{role.value}_{uuid.uuid4().hex[:8]}", role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        db.expunge(user)
        return user


def auth_headers_for(user: User) -> dict[str, str]:
    token = create_access_token(user_id=str(user.id), role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


def make_game(developer: User, *, title: str = "Test game", game_id: int | None = None, published: bool = False) -> int:
    with session_module.SessionLocal() as db:
        game = Game(title=title, developer_id=developer.id, is_published=published)
        if game_id is not None:
            game.id = int(game_id)
        db.add(game)
        db.commit()
        return int(game.id)


def zip_bytes(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture()
def developer():
    return make_user(UserRole.developer)


@pytest.fixture()
def developer_headers(developer):
    return auth_headers_for(developer)


@pytest.fixture()
def game_id(developer):
    return make_game(developer)
