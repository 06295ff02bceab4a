import copy
import os
import uuid
from typing import AsyncGenerator

# Settings are read at import time; pin the test configuration first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["STORAGE_MODE"] = "relational"
os.environ["FIREBASE_SERVICE_ACCOUNT"] = ""
os.environ["VIEW_CACHE_TTL_SECONDS"] = "0"

import pytest
import pytest_asyncio
from google.api_core.exceptions import AlreadyExists, NotFound, ServiceUnavailable
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.main import app
from src.database import get_db, Base
from src.contracts.service import ContractService
from src.core.cache import ViewCache, get_view_cache
from src.storage.document import FirestoreStore
from src.storage.relational import SQLAlchemyStore
from src.uploads.service import FileStorage, get_file_storage


# ---------------------------------------------------------------------------
# In-memory stand-in for the Firestore AsyncClient
# ---------------------------------------------------------------------------

class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentReference:
    def __init__(self, client, path):
        self._client = client
        self.path = path
        self.id = path[-1]

    def collection(self, name):
        return FakeCollection(self._client, self.path + (name,))

    async def get(self):
        return FakeSnapshot(self, self._client.docs.get(self.path))

    async def set(self, data):
        self._client.check_writable()
        self._client.docs[self.path] = copy.deepcopy(data)

    async def update(self, data):
        self._client.check_writable()
        if self.path not in self._client.docs:
            raise NotFound(f"No document to update: {'/'.join(self.path)}")
        self._client.docs[self.path].update(copy.deepcopy(data))

    async def create(self, data):
        self._client.check_writable()
        if self.path in self._client.docs:
            raise AlreadyExists(f"Document already exists: {'/'.join(self.path)}")
        self._client.docs[self.path] = copy.deepcopy(data)

    async def delete(self):
        self._client.check_writable()
        self._client.docs.pop(self.path, None)


class FakeQuery:
    def __init__(self, client, matches, filters=(), orders=(), limit=None):
        self._client = client
        self._matches = matches
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._limit = limit

    def _copy(self, **changes):
        params = dict(filters=self._filters, orders=self._orders, limit=self._limit)
        params.update(changes)
        return FakeQuery(self._client, self._matches, **params)

    def where(self, filter=None):
        return self._copy(filters=self._filters + ((filter.field_path, filter.op_string, filter.value),))

    def order_by(self, field, direction="ASCENDING"):
        return self._copy(orders=self._orders + ((field, direction),))

    def limit(self, count):
        return self._copy(limit=count)

    async def stream(self):
        rows = [(path, data) for path, data in self._client.docs.items() if self._matches(path)]
        for field, op, value in self._filters:
            assert op == "==", f"fake client only supports '==' filters, got {op}"
            rows = [(p, d) for p, d in rows if d.get(field) == value]
        for field, direction in reversed(self._orders):
            rows.sort(key=lambda row: (row[1].get(field) is not None, row[1].get(field) or ""),
                      reverse=direction == "DESCENDING")
        if self._limit is not None:
            rows = rows[: self._limit]
        for path, data in rows:
            yield FakeSnapshot(FakeDocumentReference(self._client, path), copy.deepcopy(data))


class FakeCollection(FakeQuery):
    def __init__(self, client, path):
        super().__init__(client, lambda p: len(p) == len(path) + 1 and p[:-1] == path)
        self.path = path

    def document(self, document_id=None):
        return FakeDocumentReference(self._client, self.path + (document_id or uuid.uuid4().hex,))


class FakeWriteBatch:
    def __init__(self, client):
        self._client = client
        self._ops = []

    def set(self, reference, data):
        self._ops.append(("set", reference, data))

    def update(self, reference, data):
        self._ops.append(("update", reference, data))

    def create(self, reference, data):
        self._ops.append(("create", reference, data))

    async def commit(self):
        self._client.check_writable()
        for op, reference, _ in self._ops:
            if op == "update" and reference.path not in self._client.docs:
                raise NotFound(f"No document to update: {'/'.join(reference.path)}")
            if op == "create" and reference.path in self._client.docs:
                raise AlreadyExists(f"Document already exists: {'/'.join(reference.path)}")
        for op, reference, data in self._ops:
            if op in ("set", "create"):
                self._client.docs[reference.path] = copy.deepcopy(data)
            else:
                self._client.docs[reference.path].update(copy.deepcopy(data))


class FakeFirestoreClient:
    def __init__(self):
        self.docs = {}
        self.unavailable = False

    def check_writable(self):
        if self.unavailable:
            raise ServiceUnavailable("Firestore is unavailable")

    def collection(self, name):
        return FakeCollection(self, (name,))

    def collection_group(self, name):
        return FakeQuery(self, lambda p: len(p) >= 2 and len(p) % 2 == 0 and p[-2] == name)

    def batch(self):
        return FakeWriteBatch(self)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with TestingSessionLocal() as session:
        yield session

    await test_engine.dispose()


@pytest.fixture
def store(db_session: AsyncSession) -> SQLAlchemyStore:
    return SQLAlchemyStore(db_session)


@pytest.fixture
def firestore_client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


@pytest.fixture
def document_store(firestore_client: FakeFirestoreClient) -> FirestoreStore:
    return FirestoreStore(firestore_client)


@pytest_asyncio.fixture
async def actor(store):
    result = await ContractService(store).get_or_create_user_by_email("admin@example.com", "Admin User")
    return result.data


@pytest.fixture
def service(store, actor) -> ContractService:
    return ContractService(store, actor)


@pytest.fixture
def file_storage(tmp_path) -> FileStorage:
    return FileStorage(str(tmp_path / "uploads"))


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, file_storage: FileStorage) -> AsyncGenerator[AsyncClient, None]:
    """Client for testing API endpoints."""
    async def override_get_db():
        yield db_session

    view_cache = ViewCache(ttl_seconds=0)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: file_storage
    app.dependency_overrides[get_view_cache] = lambda: view_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
