from __future__ import annotations

import datetime as dt
import os
import threading
from io import BytesIO

# Must be set before rentcircle.config / rentcircle.db are imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ADMIN_EMAILS"] = ""
os.environ.pop("CLOUDINARY_CLOUD_NAME", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from rentcircle import main  # noqa: E402
from rentcircle.auth import actor_for  # noqa: E402
from rentcircle.errors import StorageFailure  # noqa: E402
from rentcircle.listings import ImageFile, ListingDraft  # noqa: E402
from rentcircle.models import Base, Profile, Property  # noqa: E402
from rentcircle.rate_limit import limiter  # noqa: E402
from rentcircle.security import create_access_token  # noqa: E402


def batch_index(path: str) -> int:
    return int(path.rsplit("-", 1)[1].split(".", 1)[0])


class FakeStore:
    """In-memory object store; uploads whose batch index is in `fail_indexes` fail."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_indexes: set[int] = set()
        self.fail_deletes = False
        self._lock = threading.Lock()

    def put(self, path: str, data: bytes) -> str:
        if batch_index(path) in self.fail_indexes:
            raise StorageFailure("simulated upload failure")
        with self._lock:
            self.objects[path] = data
        return f"https://cdn.test/{path}"

    def delete(self, path: str) -> None:
        if self.fail_deletes:
            raise StorageFailure("simulated delete failure")
        with self._lock:
            self.objects.pop(path, None)
            self.deleted.append(path)


class ReverseCompletionStore(FakeStore):
    """Upload N only finishes after upload N+1 has finished."""

    def __init__(self, count: int) -> None:
        super().__init__()
        self.done = [threading.Event() for _ in range(count)]
        self.completed: list[int] = []

    def put(self, path: str, data: bytes) -> str:
        idx = batch_index(path)
        if idx + 1 < len(self.done):
            self.done[idx + 1].wait(timeout=5)
        url = super().put(path, data)
        with self._lock:
            self.completed.append(idx)
        self.done[idx].set()
        return url


def png_bytes(color=(200, 30, 30)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="PNG")
    return buf.getvalue()


def images(n: int) -> list[ImageFile]:
    return [ImageFile(data=png_bytes((10 * i, 40, 90)), filename=f"img{i}.png") for i in range(n)]


def draft(**overrides) -> ListingDraft:
    values = dict(
        title="Sunny 2BHK near IT park",
        property_type="2bhk",
        rent=25000,
        area="Baner",
        phone="9876543210",
        description="Semi-furnished, covered parking",
    )
    values.update(overrides)
    return ListingDraft(**values)


@pytest.fixture(autouse=True)
def _reset_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_profile(db):
    def _make(email: str, *, role: str = "owner", phone: str | None = None, is_blocked: bool = False) -> Profile:
        p = Profile(email=email.lower(), full_name=email.split("@")[0], role=role, phone=phone,
                    is_blocked=is_blocked, password_hash="unused")
        db.add(p)
        db.commit()
        return p

    return _make


@pytest.fixture
def owner(make_profile):
    return make_profile("owner@example.com")


@pytest.fixture
def other_owner(make_profile):
    return make_profile("other@example.com")


@pytest.fixture
def admin(make_profile):
    return make_profile("admin@example.com", role="admin")


@pytest.fixture
def owner_actor(owner):
    return actor_for(owner)


@pytest.fixture
def other_actor(other_owner):
    return actor_for(other_owner)


@pytest.fixture
def admin_actor(admin):
    return actor_for(admin)


@pytest.fixture
def add_property(db):
    """Insert a property row directly, bypassing submit rules."""
    counter = {"n": 0}

    def _add(owner: Profile, **kw) -> Property:
        counter["n"] += 1
        values = dict(
            user_id=owner.id,
            title=f"Flat {counter['n']}",
            property_type="1bhk",
            rent=15000,
            area="Wakad",
            description="",
            status="approved",
            created_at=dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc) + dt.timedelta(hours=counter["n"]),
        )
        values.update(kw)
        p = Property(**values)
        db.add(p)
        db.commit()
        return p

    return _add


@pytest.fixture
def client(db, store):
    def _get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    main.app.dependency_overrides[main.get_db] = _get_db
    main.app.dependency_overrides[main.get_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def auth_header(profile: Profile) -> dict[str, str]:
    token = create_access_token(user_id=profile.id, role=profile.role)
    return {"Authorization": f"Bearer {token}"}
