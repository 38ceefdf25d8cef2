"""Tests for the widget colour rules."""
import pytest

from pywaterdash.models import NetworkNode, ValveStatus
from pywaterdash.visuals import (
    COLORS,
    DEFAULT_LINKS,
    DEFAULT_NODES,
    DEFAULT_ZONES,
    node_color,
    status_color,
    zone_color,
)


@pytest.mark.parametrize(
    "temperature,expected",
    [(42, "red"), (40, "red"), (39.9, "orange"), (35, "orange"), (30, "yellow"), (29, "green")],
)
def test_zone_color(temperature, expected):
    assert zone_color(temperature) == expected


def test_default_zone_colors():
    colors = {zone.id: zone_color(zone.temperature) for zone in DEFAULT_ZONES}
    assert colors["C2"] == "red"
    assert colors["C1"] == "orange"
    assert colors["B1"] == "green"
    assert all(color in COLORS for color in colors.values())


@pytest.mark.parametrize(
    "status,expected",
    [
        ("pending", "yellow"),
        ("in-progress", "blue"),
        ("completed", "green"),
        ("cancelled", "red"),
        ("archived", "gray"),
    ],
)
def test_status_color(status, expected):
    assert status_color(status) == expected


def test_valve_node_follows_valve():
    valve_node = next(node for node in DEFAULT_NODES if node.is_valve_node)

    assert node_color(valve_node, ValveStatus.OPEN) == "green"
    assert node_color(valve_node, "CLOSED") == "red"
    assert node_color(NetworkNode(id="B", x=0, y=0, label="B"), ValveStatus.CLOSED) == "green"


def test_links_reference_known_nodes():
    ids = {node.id for node in DEFAULT_NODES}
    assert all(link.source in ids and link.target in ids for link in DEFAULT_LINKS)
