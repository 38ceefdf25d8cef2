"""Tests for the admin role guard."""
import pytest

from pywaterdash import AdminGuard
from pywaterdash.exceptions import WaterDashAccessDenied, WaterDashAuthError
from pywaterdash.guard import LOOKUP_FAILED_MESSAGE, NO_PROFILE_MESSAGE, NOT_ADMIN_MESSAGE, NOT_SIGNED_IN_MESSAGE
from conftest import SIGN_IN_URL, document_url, recorded_calls


@pytest.fixture
def guard(client):
    return AdminGuard(client)


@pytest.fixture
def mock_operator_document(mock_admin_document):
    """Mock Firestore document for a non-admin user."""
    document = dict(mock_admin_document)
    document["fields"] = dict(mock_admin_document["fields"], role={"stringValue": "operator"})
    return document


def test_login_email():
    guard = AdminGuard(None)
    assert guard.login_email("asha") == "asha@water-management.com"
    assert guard.login_email(" asha@utility.example ") == "asha@utility.example"
    assert AdminGuard(None, email_domain="utility.example").login_email("ravi") == "ravi@utility.example"


@pytest.mark.asyncio
async def test_login_admin(guard, client, mock_aioresponse, mock_sign_in_response, mock_admin_document):
    mock_aioresponse.post(SIGN_IN_URL, payload=mock_sign_in_response)
    mock_aioresponse.get(document_url("users", "admin-uid"), payload=mock_admin_document)

    profile = await guard.login("admin", "secret")

    assert profile.is_admin
    assert profile.display_name == "Asha Rao"
    assert client.current_user.uid == "admin-uid"
    call = recorded_calls(mock_aioresponse, "POST", "signInWithPassword")[0]
    assert call.kwargs["json"]["email"] == "admin@water-management.com"


@pytest.mark.asyncio
async def test_login_non_admin_signs_out(guard, client, mock_aioresponse, mock_sign_in_response,
                                         mock_operator_document):
    """Test that a non-admin is denied and signed out again."""
    mock_aioresponse.post(SIGN_IN_URL, payload=mock_sign_in_response)
    mock_aioresponse.get(document_url("users", "admin-uid"), payload=mock_operator_document)

    with pytest.raises(WaterDashAccessDenied) as exc_info:
        await guard.login("operator", "secret")

    assert exc_info.value.message == NOT_ADMIN_MESSAGE
    assert client.current_user is None


@pytest.mark.asyncio
async def test_login_without_profile(guard, client, mock_aioresponse, mock_sign_in_response):
    mock_aioresponse.post(SIGN_IN_URL, payload=mock_sign_in_response)
    mock_aioresponse.get(document_url("users", "admin-uid"), status=404)

    with pytest.raises(WaterDashAccessDenied, match="User data not found"):
        await guard.login("admin", "secret")
    assert client.current_user is None


@pytest.mark.asyncio
async def test_login_bad_password(guard, client, mock_aioresponse):
    mock_aioresponse.post(SIGN_IN_URL, status=400,
                          payload={"error": {"message": "INVALID_LOGIN_CREDENTIALS"}})

    with pytest.raises(WaterDashAuthError) as exc_info:
        await guard.login("admin", "wrong")

    assert not isinstance(exc_info.value, WaterDashAccessDenied)
    assert exc_info.value.message == "Invalid username or password"


@pytest.mark.asyncio
async def test_check_without_user(guard):
    with pytest.raises(WaterDashAuthError, match=NOT_SIGNED_IN_MESSAGE):
        await guard.check(None)


@pytest.mark.asyncio
async def test_watch_reports_current_and_future_identities(guard, client, mock_aioresponse,
                                                           mock_sign_in_response, mock_admin_document):
    granted, denied = [], []
    subscription = await guard.watch(granted.append, denied.append)
    assert denied == [NOT_SIGNED_IN_MESSAGE]

    mock_aioresponse.post(SIGN_IN_URL, payload=mock_sign_in_response)
    mock_aioresponse.get(document_url("users", "admin-uid"), payload=mock_admin_document)
    await client.sign_in("admin@water-management.com", "secret")
    assert [profile.uid for profile in granted] == ["admin-uid"]

    await client.sign_out()
    assert denied == [NOT_SIGNED_IN_MESSAGE, NOT_SIGNED_IN_MESSAGE]

    subscription.cancel()
    mock_aioresponse.post(SIGN_IN_URL, payload=mock_sign_in_response)
    await client.sign_in("admin@water-management.com", "secret")
    assert len(granted) == 1


@pytest.mark.asyncio
async def test_watch_denies_non_admin(guard, signed_in_client, mock_aioresponse, mock_operator_document):
    granted, denied = [], []
    mock_aioresponse.get(document_url("users", "admin-uid"), payload=mock_operator_document)

    await guard.watch(granted.append, denied.append)

    assert granted == []
    assert denied == [NOT_ADMIN_MESSAGE]
    assert signed_in_client.current_user is not None


@pytest.mark.asyncio
async def test_watch_missing_profile_and_lookup_failure(guard, signed_in_client, mock_aioresponse):
    denied = []
    mock_aioresponse.get(document_url("users", "admin-uid"), status=404)
    await guard.watch(lambda profile: None, denied.append)

    mock_aioresponse.get(document_url("users", "admin-uid"), status=500)
    await guard.watch(lambda profile: None, denied.append)

    assert denied == [NO_PROFILE_MESSAGE, LOOKUP_FAILED_MESSAGE]
