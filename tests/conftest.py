"""Shared fixtures and fakes for the test suite."""
import re
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aioresponses import aioresponses

from pywaterdash import WaterDashClient
from pywaterdash.exceptions import WaterDashAPIError
from pywaterdash.feed import RealtimeFeed, Subscription

API_KEY = "test-key"
PROJECT_ID = "test-project"
DATABASE_URL = "https://test-db.firebaseio.com"

SIGN_IN_URL = re.compile(r"^https://identitytoolkit\.googleapis\.com/v1/accounts:signInWithPassword.*")
TOKEN_URL = re.compile(r"^https://securetoken\.googleapis\.com/v1/token.*")


def document_url(collection: str, doc_id: str) -> "re.Pattern":
    return re.compile(rf"^https://firestore\.googleapis\.com/v1/projects/{PROJECT_ID}/.*/documents/{collection}/{doc_id}(\?.*)?$")


def feed_url(path: str) -> "re.Pattern":
    return re.compile(rf"^{re.escape(DATABASE_URL)}/{re.escape(path)}\.json(\?.*)?$")


RUN_QUERY_URL = re.compile(r"^https://firestore\.googleapis\.com/v1/projects/test-project/.*documents:runQuery$")


def recorded_calls(mock: aioresponses, method: str, fragment: str) -> list:
    """Requests captured by aioresponses whose URL contains ``fragment``."""
    found = []
    for (recorded_method, url), calls in mock.requests.items():
        if recorded_method == method and fragment in str(url):
            found.extend(calls)
    return found


class FakeFeed(RealtimeFeed):
    """In-memory feed: tests push values with ``emit``."""

    def __init__(self) -> None:
        self.values: Dict[str, Any] = {}
        self.listeners: Dict[str, List] = {}
        self.writes: List[Tuple[str, Any]] = []
        self.fail_writes = False

    def subscribe(self, path, callback) -> Subscription:
        self.listeners.setdefault(path, []).append(callback)

        def remove() -> None:
            self.listeners[path].remove(callback)

        return Subscription(remove)

    def emit(self, path: str, value: Any) -> None:
        self.values[path] = value
        for callback in list(self.listeners.get(path, [])):
            callback(value)

    def listener_count(self, path: Optional[str] = None) -> int:
        if path is not None:
            return len(self.listeners.get(path, []))
        return sum(len(callbacks) for callbacks in self.listeners.values())

    async def set_value(self, path, value) -> None:
        if self.fail_writes:
            raise WaterDashAPIError("Request failed: 503", status=503)
        self.values[path] = value
        self.writes.append((path, value))

    async def get_value(self, path) -> Any:
        return self.values.get(path)


class FakeStore:
    """In-memory document store with the client's query/update surface."""

    def __init__(self, collections: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None) -> None:
        self.collections = collections or {}
        self.updates: List[Tuple[str, str, Dict[str, Any]]] = []
        self.queries: List[Dict[str, Any]] = []
        self.fail = False

    async def get_document(self, collection, doc_id):
        if self.fail:
            raise WaterDashAPIError("Request failed: 503", status=503)
        document = self.collections.get(collection, {}).get(doc_id)
        return dict(document, id=doc_id) if document is not None else None

    async def run_query(self, collection, where=None, order_by=None, descending=False, limit=None):
        if self.fail:
            raise WaterDashAPIError("Request failed: 503", status=503)
        self.queries.append({"collection": collection, "where": where, "order_by": order_by,
                             "descending": descending})
        documents = [dict(doc, id=doc_id) for doc_id, doc in self.collections.get(collection, {}).items()]
        if where is not None:
            field, value = where
            documents = [doc for doc in documents if doc.get(field) == value]
        if order_by is not None:
            documents.sort(key=lambda doc: doc[order_by], reverse=descending)
        return documents[:limit] if limit else documents

    async def update_document(self, collection, doc_id, fields):
        if self.fail:
            raise WaterDashAPIError("Request failed: 403", status=403)
        self.updates.append((collection, doc_id, fields))
        self.collections.setdefault(collection, {}).setdefault(doc_id, {}).update(fields)


@pytest.fixture
def fake_feed():
    return FakeFeed()


@pytest.fixture
def mock_aioresponse():
    """Create a mock aiohttp response."""
    with aioresponses() as m:
        yield m


@pytest.fixture
def mock_sign_in_response():
    """Mock password sign-in response."""
    return {
        "kind": "identitytoolkit#VerifyPasswordResponse",
        "localId": "admin-uid",
        "email": "admin@water-management.com",
        "displayName": "",
        "idToken": "test-id-token",
        "registered": True,
        "refreshToken": "test-refresh-token",
        "expiresIn": "3600",
    }


@pytest.fixture
def mock_refresh_response():
    """Mock secure token refresh response."""
    return {
        "access_token": "fresh-id-token",
        "expires_in": "3600",
        "token_type": "Bearer",
        "refresh_token": "fresh-refresh-token",
        "id_token": "fresh-id-token",
        "user_id": "admin-uid",
        "project_id": "1234",
    }


@pytest.fixture
def mock_admin_document():
    """Mock Firestore document for an admin user."""
    return {
        "name": f"projects/{PROJECT_ID}/databases/(default)/documents/users/admin-uid",
        "fields": {
            "name": {"stringValue": "Asha Rao"},
            "email": {"stringValue": "admin@water-management.com"},
            "role": {"stringValue": "admin"},
        },
        "createTime": "2025-01-10T08:00:00.000000Z",
        "updateTime": "2025-01-10T08:00:00.000000Z",
    }


@pytest_asyncio.fixture
async def client(mock_aioresponse):
    """Create a connected WaterDashClient instance for testing."""
    client = WaterDashClient(
        api_key=API_KEY,
        project_id=PROJECT_ID,
        database_url=DATABASE_URL,
    )
    await client.connect()
    yield client
    await client.close()  # Ensure client is closed after test


@pytest_asyncio.fixture
async def signed_in_client(client, mock_aioresponse, mock_sign_in_response):
    """A client already signed in as the admin account."""
    mock_aioresponse.post(SIGN_IN_URL, payload=mock_sign_in_response)
    await client.sign_in("admin@water-management.com", "secret")
    return client
