"""Tests for the Firestore REST value codec."""
from datetime import datetime, timezone

import pytest

from pywaterdash.firestore import (
    decode_document,
    decode_query_results,
    encode_fields,
    encode_value,
    parse_timestamp,
    structured_query,
)
from pywaterdash.models import RequestStatus


@pytest.fixture
def mock_request_document():
    """Mock service request document as returned by the REST API."""
    return {
        "name": "projects/test-project/databases/(default)/documents/service_requests/req-1",
        "fields": {
            "userName": {"stringValue": "Ravi"},
            "status": {"stringValue": "pending"},
            "location": {"mapValue": {"fields": {
                "latitude": {"doubleValue": 12.97},
                "longitude": {"doubleValue": 77.59},
            }}},
            "tankerSent": {"booleanValue": False},
            "photoUrl": {"nullValue": None},
            "attempts": {"integerValue": "2"},
            "tags": {"arrayValue": {"values": [{"stringValue": "urgent"}]}},
            "createdAt": {"timestampValue": "2025-01-02T08:30:00.123456789Z"},
        },
    }


def test_decode_document(mock_request_document):
    data = decode_document(mock_request_document)

    assert data["id"] == "req-1"
    assert data["userName"] == "Ravi"
    assert data["location"] == {"latitude": 12.97, "longitude": 77.59}
    assert data["tankerSent"] is False
    assert data["photoUrl"] is None
    assert data["attempts"] == 2
    assert data["tags"] == ["urgent"]
    assert data["createdAt"] == datetime(2025, 1, 2, 8, 30, 0, 123456, tzinfo=timezone.utc)


def test_decode_geopoint_value():
    document = {
        "name": "a/b/c",
        "fields": {"location": {"geoPointValue": {"latitude": 1.5, "longitude": 2}}},
    }
    assert decode_document(document)["location"] == {"latitude": 1.5, "longitude": 2.0}


def test_decode_query_results_skips_empty_rows(mock_request_document):
    results = [
        {"document": mock_request_document, "readTime": "2025-01-02T08:30:00Z"},
        {"readTime": "2025-01-02T08:30:00Z"},
    ]
    assert [doc["id"] for doc in decode_query_results(results)] == ["req-1"]


def test_parse_timestamp_without_fraction():
    assert parse_timestamp("2025-01-02T08:30:00Z") == datetime(2025, 1, 2, 8, 30, tzinfo=timezone.utc)


def test_encode_values():
    sent_at = datetime(2025, 1, 2, 8, 30, tzinfo=timezone.utc)
    assert encode_fields({
        "status": RequestStatus.IN_PROGRESS,
        "tankerSent": True,
        "count": 3,
        "ratio": 0.5,
        "note": None,
        "tankerSentAt": sent_at,
    }) == {
        "status": {"stringValue": "in-progress"},
        "tankerSent": {"booleanValue": True},
        "count": {"integerValue": "3"},
        "ratio": {"doubleValue": 0.5},
        "note": {"nullValue": None},
        "tankerSentAt": {"timestampValue": "2025-01-02T08:30:00Z"},
    }


def test_encode_nested():
    assert encode_value({"tags": ["a"]}) == {
        "mapValue": {"fields": {"tags": {"arrayValue": {"values": [{"stringValue": "a"}]}}}}
    }


def test_encode_unsupported_type():
    with pytest.raises(TypeError):
        encode_value(object())


def test_structured_query():
    body = structured_query("service_requests", where=("status", "pending"),
                            order_by="createdAt", descending=True, limit=5)
    query = body["structuredQuery"]

    assert query["from"] == [{"collectionId": "service_requests"}]
    assert query["where"]["fieldFilter"] == {
        "field": {"fieldPath": "status"},
        "op": "EQUAL",
        "value": {"stringValue": "pending"},
    }
    assert query["orderBy"] == [{"field": {"fieldPath": "createdAt"}, "direction": "DESCENDING"}]
    assert query["limit"] == 5


def test_structured_query_plain():
    assert structured_query("users") == {"structuredQuery": {"from": [{"collectionId": "users"}]}}
