"""pywaterdash - Admin dashboard library for water network monitoring."""

__version__ = "0.1.0"

from .client import WaterDashClient
from .guard import AdminGuard
from .models import FlowSample, ServiceRequest, ValveCommand, ValveStatus
from .telemetry import FlowMonitor, FlowSeries, TelemetrySubscriptionManager, evaluate_leak

__all__ = [
    "WaterDashClient",
    "AdminGuard",
    "FlowSample",
    "ServiceRequest",
    "ValveCommand",
    "ValveStatus",
    "FlowMonitor",
    "FlowSeries",
    "TelemetrySubscriptionManager",
    "evaluate_leak",
]
