"""View state for the admin dashboard pages.

These objects hold what a page shows and handle the page's user actions.
Store write failures are caught here and turned into a transient
``message``; nothing is retried.
"""
import logging
from typing import Any, Dict, List, Optional

from .exceptions import WaterDashError
from .geo import PointLike, plan_dispatch
from .models import DispatchRoute, FlowState, Overview, ServiceRequest, UserProfile, ValveStatus
from .service_requests import ServiceRequestManager, StatusLike
from .telemetry import FlowMonitor
from .valve import ValveCommandEmitter

warning_logger = logging.getLogger('waterdash.warning')

LEAK_BANNER = "LEAK DETECTED!"
NORMAL_BANNER = "System Normal"
VALVE_FAILED_MESSAGE = "Failed to update valve"
STATUS_FAILED_MESSAGE = "Failed to update status"
DISPATCH_FAILED_MESSAGE = "Failed to dispatch tanker"
DISPATCH_SENT_MESSAGE = "Tanker dispatched successfully! Status updated to In Progress."


class ReadingsBoard:
    """Sensor readings page: live flows, leak banner and the valve toggle.

    The toggle is optimistic. ``valve_on`` flips immediately, is rolled back
    if the command write fails, and is overwritten by every valve status report
    from the feed, repeated or not.
    """

    def __init__(self, monitor: FlowMonitor, emitter: ValveCommandEmitter) -> None:
        self.monitor = monitor
        self.emitter = emitter
        self.valve_on = True
        self.message: Optional[str] = None
        self._listener = None

    def open(self) -> "ReadingsBoard":
        if self._listener is None:
            self._listener = self.monitor.add_listener(self._on_state)
        self.monitor.start()
        return self

    def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None
        self.monitor.stop()

    def __enter__(self) -> "ReadingsBoard":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _on_state(self, state: FlowState) -> None:
        if state.valve_reported:
            self.valve_on = state.sample.valve_open

    @property
    def state(self) -> Optional[FlowState]:
        return self.monitor.state

    @property
    def incoming(self) -> float:
        return self.state.sample.inlet if self.state else 0.0

    @property
    def outgoing(self) -> float:
        return self.state.sample.outlet if self.state else 0.0

    @property
    def difference(self) -> float:
        return abs(self.incoming - self.outgoing)

    @property
    def leak_detected(self) -> bool:
        return self.monitor.leak_detected

    @property
    def valve_status(self) -> ValveStatus:
        """Valve position last reported by the controller."""
        return self.state.valve_status if self.state else ValveStatus.OPEN

    @property
    def banner(self) -> str:
        return LEAK_BANNER if self.leak_detected else NORMAL_BANNER

    @property
    def connected(self) -> bool:
        return self.monitor.connected

    def chart_points(self) -> List[Dict[str, Any]]:
        return self.monitor.series.chart_points()

    async def toggle_valve(self) -> bool:
        """Flip the valve and send the command. Returns whether the write landed."""
        requested = not self.valve_on
        self.valve_on = requested
        self.message = None
        try:
            await self.emitter.request_valve_state(requested)
        except WaterDashError as e:
            warning_logger.error(f"Error updating valve: {e}")
            self.valve_on = not requested
            self.message = VALVE_FAILED_MESSAGE
            return False
        return True


class RequestsBoard:
    """Service requests page: the list, status actions and tanker dispatch."""

    def __init__(self, manager: ServiceRequestManager) -> None:
        self.manager = manager
        self.requests: List[ServiceRequest] = []
        self.message: Optional[str] = None

    async def refresh(self) -> List[ServiceRequest]:
        """Reload the list. On failure the previous list stays."""
        try:
            self.requests = await self.manager.list_requests()
        except WaterDashError as e:
            warning_logger.error(f"Error loading service requests: {e}")
        return self.requests

    def get(self, request_id: str) -> Optional[ServiceRequest]:
        for request in self.requests:
            if request.id == request_id:
                return request
        return None

    async def mark(self, request_id: str, status: StatusLike) -> bool:
        self.message = None
        try:
            await self.manager.update_status(request_id, status)
        except WaterDashError as e:
            warning_logger.error(f"Error updating status of {request_id}: {e}")
            self.message = STATUS_FAILED_MESSAGE
            return False
        await self.refresh()
        return True

    def route(self, request_id: str, tanker_position: Optional[PointLike] = None) -> Optional[DispatchRoute]:
        """Map framing for a listed request, with the tanker when its position is known."""
        request = self.get(request_id)
        if request is None:
            return None
        return plan_dispatch(request.location, tanker_position)

    async def dispatch_tanker(self, request_id: str) -> bool:
        self.message = None
        try:
            await self.manager.send_tanker(request_id)
        except WaterDashError as e:
            warning_logger.error(f"Error sending tanker to {request_id}: {e}")
            self.message = DISPATCH_FAILED_MESSAGE
            return False
        self.message = DISPATCH_SENT_MESSAGE
        await self.refresh()
        return True


async def load_overview(manager: ServiceRequestManager, profile: UserProfile) -> Overview:
    """Landing page numbers. A failed count shows as 0."""
    try:
        pending = await manager.count_pending()
    except WaterDashError as e:
        warning_logger.error(f"Error loading stats: {e}")
        pending = 0
    return Overview(user_name=profile.display_name, pending_requests=pending)
