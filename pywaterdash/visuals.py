"""Colour rules for the dashboard widgets."""
from typing import List, Union

from .models import NetworkLink, NetworkNode, RequestStatus, ValveStatus, Zone

COLORS = {
    "red": "#ef4444",
    "orange": "#f97316",
    "yellow": "#eab308",
    "green": "#22c55e",
    "blue": "#3b82f6",
    "gray": "#6b7280",
}

DEFAULT_ZONES: List[Zone] = [
    Zone(id="A1", name="Zone A1", temperature=28, sensors=3, solenoids=2, x=15, y=20),
    Zone(id="A2", name="Zone A2", temperature=32, sensors=2, solenoids=1, x=40, y=15),
    Zone(id="B1", name="Zone B1", temperature=26, sensors=4, solenoids=3, x=65, y=25),
    Zone(id="B2", name="Zone B2", temperature=29, sensors=2, solenoids=2, x=85, y=20),
    Zone(id="C1", name="Zone C1", temperature=35, sensors=3, solenoids=2, x=25, y=60),
    Zone(id="C2", name="Zone C2", temperature=42, sensors=2, solenoids=1, x=55, y=65),
    Zone(id="D1", name="Zone D1", temperature=31, sensors=3, solenoids=2, x=80, y=70),
]

DEFAULT_NODES: List[NetworkNode] = [
    NetworkNode(id="A", x=15, y=35, label="A", is_valve_node=True),
    NetworkNode(id="B", x=30, y=15, label="B"),
    NetworkNode(id="C", x=70, y=20, label="C"),
    NetworkNode(id="D", x=45, y=55, label="D"),
    NetworkNode(id="E", x=75, y=60, label="E"),
]

DEFAULT_LINKS: List[NetworkLink] = [
    NetworkLink(source="A", target="B"),
    NetworkLink(source="A", target="D"),
    NetworkLink(source="B", target="C"),
    NetworkLink(source="B", target="D"),
    NetworkLink(source="C", target="E"),
    NetworkLink(source="D", target="E"),
]


def zone_color(temperature: float) -> str:
    """Heatmap band: 40+ red, 35+ orange, 30+ yellow, otherwise green."""
    if temperature >= 40:
        return "red"
    if temperature >= 35:
        return "orange"
    if temperature >= 30:
        return "yellow"
    return "green"


def status_color(status: Union[RequestStatus, str]) -> str:
    """Badge colour for a service request status; gray when unrecognised."""
    try:
        status = RequestStatus(status)
    except ValueError:
        return "gray"
    return {
        RequestStatus.PENDING: "yellow",
        RequestStatus.IN_PROGRESS: "blue",
        RequestStatus.COMPLETED: "green",
        RequestStatus.CANCELLED: "red",
    }[status]


def node_color(node: NetworkNode, valve_status: Union[ValveStatus, str]) -> str:
    """The valve node follows the valve; every other node is green."""
    if node.is_valve_node:
        return "green" if ValveStatus.from_value(valve_status) is ValveStatus.OPEN else "red"
    return "green"
