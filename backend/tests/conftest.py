"""
StackIt Backend — Test Configuration (conftest.py)
====================================================

What:  Shared fixtures and in-process doubles for the three external
       collaborators (Document Store, Object Store, Identity Gateway).
How:   The doubles implement the same abstract classes as the real gateways,
       so services run unmodified against them. API tests swap them in via
       app.dependency_overrides.

Fixture Hierarchy (all function-scoped):
    ├── document_store:  InMemoryDocumentStore (can be told to fail)
    ├── object_store:    RecordingObjectStore (records uploads, can fail)
    ├── identity:        FakeIdentityGateway (accounts + tokens in dicts)
    ├── session_cache:   SessionCache attached to `identity`
    ├── alice / admin:   signed-in Sessions with profile documents stored
    └── test_client:     HTTPX AsyncClient over ASGITransport
"""

import copy
import itertools
import os
import tempfile
from typing import Any, Dict, List, Optional, Sequence, Set

# Settings are read at import time; configure before importing stackit
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./stackit_test.db"
os.environ["FIREBASE_API_KEY"] = "test-key-not-real"
os.environ["OBJECT_STORE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="stackit_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from stackit.exceptions import AuthenticationError, BackendCallError, NotFoundError, ValidationError
from stackit.gateways.document_store import (
    DocumentSnapshot,
    DocumentStore,
    DocumentUpdate,
    _order_key,
    generate_document_id,
    resolve_server_timestamps,
)
from stackit.gateways.identity import AuthStateChange, Credential, IdentityGateway
from stackit.gateways.object_store import ObjectStore
from stackit.services.session_cache import Profile, Session, SessionCache


# ══════════════════════════════════════════════════════════════════════════
# Gateway Doubles
# ══════════════════════════════════════════════════════════════════════════


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed DocumentStore.

    `fail_on` holds operation names ("add", "set", "list", ...) that raise
    BackendCallError; `calls` records every operation in order.
    """

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.fail_on: Set[str] = set()
        self.calls: List[str] = []

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise BackendCallError(message="simulated outage", service="document_store")

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})

    async def get_document(self, collection, document_id):
        self._record("get")
        data = self._collection(collection).get(document_id)
        return copy.deepcopy(data) if data is not None else None

    async def set_document(self, collection, document_id, fields, merge=False):
        self._record("set")
        docs = self._collection(collection)
        resolved = resolve_server_timestamps(fields)
        if merge and document_id in docs:
            docs[document_id] = {**docs[document_id], **resolved}
        else:
            docs[document_id] = resolved

    async def add_document(self, collection, fields):
        self._record("add")
        document_id = generate_document_id()
        self._collection(collection)[document_id] = resolve_server_timestamps(fields)
        return document_id

    async def list_documents(self, collection, order_by=None, descending=False):
        self._record("list")
        snapshots = [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
        ]
        if order_by:
            snapshots.sort(key=lambda s: _order_key(s.data.get(order_by)), reverse=descending)
        return snapshots

    async def query_documents(self, collection, field_name, value):
        self._record("query")
        return [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
            if data.get(field_name) == value
        ]

    async def delete_document(self, collection, document_id):
        self._record("delete")
        return self._collection(collection).pop(document_id, None) is not None

    async def increment(self, collection, document_id, field_name, delta):
        self._record("increment")
        doc = self._collection(collection).get(document_id)
        if doc is None:
            raise NotFoundError(resource=collection, resource_id=document_id)
        doc[field_name] = int(doc.get(field_name) or 0) + delta
        return doc[field_name]

    async def batch_update(self, updates: Sequence[DocumentUpdate]):
        self._record("batch_update")
        for collection, document_id, _ in updates:
            if document_id not in self._collection(collection):
                raise NotFoundError(resource=collection, resource_id=document_id)
        for collection, document_id, fields in updates:
            doc = self._collection(collection)[document_id]
            doc.update(resolve_server_timestamps(fields))

    async def ping(self):
        return "ping" not in self.fail_on


class RecordingObjectStore(ObjectStore):
    """Returns deterministic URLs; filenames in `fail_for` raise BackendCallError."""

    name = "recording"

    def __init__(self) -> None:
        self.uploads: List[Dict[str, Any]] = []
        self.fail_for: Set[str] = set()
        self._counter = itertools.count(1)

    async def upload(self, filename, content, content_type, kind):
        if filename in self.fail_for:
            raise BackendCallError(message="simulated upload failure", service="object_store")
        url = f"https://cdn.test/{kind}/{next(self._counter)}/{filename}"
        self.uploads.append(
            {"filename": filename, "size": len(content), "content_type": content_type, "kind": kind, "url": url}
        )
        return url


class FakeIdentityGateway(IdentityGateway):
    """Accounts keyed by email; tokens map to user ids."""

    def __init__(self) -> None:
        super().__init__()
        self.accounts: Dict[str, Dict[str, str]] = {}
        self.tokens: Dict[str, str] = {}
        self.reset_requests: List[str] = []
        self._ids = itertools.count(1)

    def add_account(self, email: str, password: str, user_id: Optional[str] = None) -> str:
        user_id = user_id or f"uid-{next(self._ids)}"
        self.accounts[email] = {"user_id": user_id, "password": password}
        return user_id

    def issue_token(self, user_id: str) -> str:
        token = f"token-{user_id}-{len(self.tokens) + 1}"
        self.tokens[token] = user_id
        return token

    async def create_account(self, email, password):
        if email in self.accounts:
            raise ValidationError(message="An account with this email already exists", field="email")
        user_id = self.add_account(email, password)
        token = self.issue_token(user_id)
        await self._notify(AuthStateChange(user_id=user_id, token=token))
        return Credential(user_id=user_id, token=token, email=email)

    async def sign_in(self, email, password):
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise AuthenticationError(message="Invalid email or password")
        token = self.issue_token(account["user_id"])
        await self._notify(AuthStateChange(user_id=account["user_id"], token=token))
        return Credential(user_id=account["user_id"], token=token, email=email)

    async def send_password_reset(self, email):
        self.reset_requests.append(email)

    async def verify_token(self, token):
        if token not in self.tokens:
            raise AuthenticationError(message="Your session has expired. Please sign in again.")
        return self.tokens[token]

    async def sign_out(self, token):
        self.tokens.pop(token, None)
        await super().sign_out(token)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def object_store():
    return RecordingObjectStore()


@pytest.fixture
def identity():
    return FakeIdentityGateway()


@pytest.fixture
def session_cache(document_store, identity):
    cache = SessionCache(document_store)
    cache.attach(identity)
    yield cache
    cache.detach()


async def _signed_in(document_store, identity, username: str, role: str) -> Session:
    email = f"{username}@example.com"
    user_id = identity.add_account(email, "Passw0rd!", user_id=f"uid-{username}")
    await document_store.set_document(
        "users",
        user_id,
        {
            "username": username,
            "email": email,
            "phoneNumber": "+919876543210",
            "role": role,
            "createdAt": "2026-01-01T00:00:00+00:00",
        },
    )
    token = identity.issue_token(user_id)
    data = await document_store.get_document("users", user_id)
    return Session(token=token, user_id=user_id, profile=Profile.from_document(user_id, data))


@pytest_asyncio.fixture
async def alice(document_store, identity) -> Session:
    """A regular signed-in user (profile stored, token valid)."""
    return await _signed_in(document_store, identity, "alice", "user")


@pytest_asyncio.fixture
async def admin(document_store, identity) -> Session:
    return await _signed_in(document_store, identity, "root_admin", "admin")


@pytest.fixture
def auth_headers():
    def build(session: Session) -> Dict[str, str]:
        return {"Authorization": f"Bearer {session.token}"}
    return build


@pytest_asyncio.fixture
async def test_client(document_store, object_store, identity, session_cache):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process, with every
    gateway replaced by the doubles above.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from stackit import dependencies
    from stackit.main import app

    app.dependency_overrides[dependencies.get_document_store] = lambda: document_store
    app.dependency_overrides[dependencies.get_object_store] = lambda: object_store
    app.dependency_overrides[dependencies.get_identity_gateway] = lambda: identity
    app.dependency_overrides[dependencies.get_session_cache] = lambda: session_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
