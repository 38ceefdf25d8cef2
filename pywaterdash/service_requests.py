"""Service request triage."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .models import RequestStatus, ServiceRequest

main_logger = logging.getLogger('waterdash.main')
warning_logger = logging.getLogger('waterdash.warning')

COLLECTION = "service_requests"

StatusLike = Union[RequestStatus, str]


def available_actions(status: StatusLike) -> List[RequestStatus]:
    """Statuses an admin can move a request to: every one but its own."""
    current = RequestStatus(status)
    return [candidate for candidate in RequestStatus if candidate is not current]


def format_timestamp(timestamp: Optional[datetime]) -> str:
    """``02 Jan 2025, 14:05`` in local time, or ``N/A``."""
    if timestamp is None:
        return "N/A"
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone()
    return timestamp.strftime("%d %b %Y, %H:%M")


class ServiceRequestManager:
    """Reads and updates service request documents."""

    def __init__(self, store, collection: str = COLLECTION) -> None:
        """Initialize the manager.

        Args:
            store: Document store (a ``WaterDashClient``)
            collection: Collection holding the requests
        """
        self.store = store
        self.collection = collection

    def _parse(self, documents: List[Dict[str, Any]]) -> List[ServiceRequest]:
        requests = []
        for document in documents:
            try:
                requests.append(ServiceRequest.model_validate(document))
            except ValidationError as e:
                warning_logger.warning(f"Skipping malformed request {document.get('id')}: {e}")
        return requests

    async def list_requests(self) -> List[ServiceRequest]:
        """All requests, newest first."""
        documents = await self.store.run_query(
            self.collection, order_by="createdAt", descending=True
        )
        return self._parse(documents)

    async def list_by_status(self, status: StatusLike) -> List[ServiceRequest]:
        """Requests currently in ``status``."""
        status = RequestStatus(status)
        documents = await self.store.run_query(self.collection, where=("status", status.value))
        return self._parse(documents)

    async def count_pending(self) -> int:
        return len(await self.list_by_status(RequestStatus.PENDING))

    async def update_status(self, request_id: str, status: StatusLike) -> None:
        """Move a request to ``status``. Any status may follow any other."""
        status = RequestStatus(status)
        await self.store.update_document(self.collection, request_id, {
            "status": status.value,
            "updatedAt": datetime.now(timezone.utc),
        })
        main_logger.info(f"Request {request_id} marked {status.value}")

    async def send_tanker(self, request_id: str) -> None:
        """Record a tanker dispatch and move the request to in-progress."""
        now = datetime.now(timezone.utc)
        await self.store.update_document(self.collection, request_id, {
            "status": RequestStatus.IN_PROGRESS.value,
            "tankerSent": True,
            "tankerSentAt": now,
            "updatedAt": now,
        })
        main_logger.info(f"Tanker dispatched for request {request_id}")
