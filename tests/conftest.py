"""
Shared fixtures: in-memory stand-ins for the Record Store, Blob Uploader and
Identity Verifier, wired into the FastAPI app through dependency overrides.
"""

import copy
import dataclasses
import threading

import pytest
from fastapi.testclient import TestClient

from backend.clients import get_blob_uploader, get_identity_verifier, get_record_store
from backend.errors import NotFound, StoreFailed, UploadFailed
from backend.identity import InvalidIdentityToken
from backend.settings import get_settings, load_settings
from backend.store import new_push_key
from routers.user.common import STATUS_ACTIVE, USERS, hash_password
from routers.user.tokens import make_session_token


class InMemoryRecordStore:
    """Dict-of-dicts RecordStore; documents are deep-copied in and out.

    `fail_ops` names operations ("get", "set", ...) that raise StoreFailed.
    """

    def __init__(self):
        self.collections = {}
        self.writes = []
        self.fail_ops = set()

    def _coll(self, collection):
        return self.collections.setdefault(collection, {})

    def _maybe_fail(self, op, collection, key):
        if op in self.fail_ops:
            raise StoreFailed(f"{op} {collection}/{key} failed: store unavailable")

    def get(self, collection, key):
        self._maybe_fail("get", collection, key)
        doc = self._coll(collection).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection, key, doc):
        self._maybe_fail("set", collection, key)
        self.writes.append((collection, key))
        self._coll(collection)[key] = copy.deepcopy(doc)

    def push_key(self, collection):
        return new_push_key()

    def update_fields(self, collection, key, partial):
        if key not in self._coll(collection):
            raise NotFound(f"{collection}/{key} not found")
        self._coll(collection)[key].update(copy.deepcopy(partial))
        self.writes.append((collection, key))
        return self.get(collection, key)

    def remove(self, collection, key):
        if key not in self._coll(collection):
            raise NotFound(f"{collection}/{key} not found")
        del self._coll(collection)[key]

    def list(self, collection):
        return [(k, copy.deepcopy(v)) for k, v in self._coll(collection).items()]

    def find_by_field(self, collection, field, value):
        return [(k, copy.deepcopy(v)) for k, v in self._coll(collection).items() if v.get(field) == value]


class RecordingUploader:
    """Returns https://blob.test/<path>; `fail_on` makes matching paths raise UploadFailed."""

    base_url = "https://blob.test"

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.uploads = {}
        self._lock = threading.Lock()

    def upload(self, path, data, content_type=None):
        if self.fail_on and self.fail_on in path:
            raise UploadFailed(f"Upload failed for {path}: boom")
        with self._lock:
            self.uploads[path] = data
        return f"{self.base_url}/{path}"

    @property
    def count(self):
        return len(self.uploads)


class FakeVerifier:
    def __init__(self):
        self.tokens = {}

    def verify(self, id_token):
        claims = self.tokens.get(id_token)
        if claims is None:
            raise InvalidIdentityToken("unknown token")
        return dict(claims)


@pytest.fixture
def settings():
    return dataclasses.replace(load_settings(), secret_key="field-log-test-secret-0123456789abcdef", reset_webhook_url=None)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def uploader():
    return RecordingUploader()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def app(store, uploader, verifier, settings):
    from main import app as fastapi_app

    fastapi_app.dependency_overrides[get_record_store] = lambda: store
    fastapi_app.dependency_overrides[get_blob_uploader] = lambda: uploader
    fastapi_app.dependency_overrides[get_identity_verifier] = lambda: verifier
    fastapi_app.dependency_overrides[get_settings] = lambda: settings
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # no context manager: the lifespan hook would build real Azure clients
    return TestClient(app)


@pytest.fixture
def make_user(store, settings):
    """Create a password user; returns (uid, bearer headers)."""

    def _make(role="investigador", email=None, password="secret-pass", status=STATUS_ACTIVE, **extra):
        uid = new_push_key()
        doc = {
            "firstName": extra.pop("firstName", "Ada"),
            "lastName":  extra.pop("lastName", "Lovelace"),
            "email":     email or f"{uid.lower()}@example.org",
            "password":  hash_password(password),
            "photoURL":  "https://blob.test/users/x/profile.jpg",
            "role":      role,
            "status":    status,
            "provider":  "password",
            **extra,
        }
        store.set(USERS, uid, doc)
        token, _ = make_session_token(uid, doc, settings)
        return uid, {"Authorization": f"Bearer {token}"}

    return _make
