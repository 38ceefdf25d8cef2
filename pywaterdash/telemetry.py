"""Live flow telemetry: subscriptions, leak evaluation and chart history.

Three feed channels (inlet flow, outlet flow, valve status) update
independently. The subscription manager merges them into one triple, the
flow monitor turns every triple into a ``FlowSample``, appends it to a
bounded series and recomputes the leak flag.
"""
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple

from .feed import DEFAULT_PATHS, FeedPaths, RealtimeFeed, Subscription
from .models import FlowSample, FlowState, ValveStatus

debug_logger = logging.getLogger('waterdash.debug')
warning_logger = logging.getLogger('waterdash.warning')

LEAK_THRESHOLD = 10.0
SERIES_CAPACITY = 60

UpdateCallback = Callable[[float, float, bool], None]
StateListener = Callable[[FlowState], None]


def evaluate_leak(
    inlet: Optional[float],
    outlet: Optional[float],
    threshold: float = LEAK_THRESHOLD,
) -> bool:
    """Whether the inlet/outlet difference is strictly above ``threshold``.

    A reading that has not arrived yet counts as 0.
    """
    return abs((inlet or 0.0) - (outlet or 0.0)) > threshold


def _to_flow(value: Any, channel: str) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        flow = float(value)
    except (TypeError, ValueError):
        debug_logger.debug(f"Ignoring non-numeric {channel} value: {value!r}")
        return None
    if flow != flow:  # NaN
        return None
    if flow < 0:
        warning_logger.warning(f"Negative {channel} reading {flow} clamped to 0")
        return 0.0
    return flow


class FlowSeries:
    """Fixed-capacity history of flow samples, oldest first."""

    def __init__(self, capacity: int = SERIES_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._samples: Deque[FlowSample] = deque(maxlen=capacity)

    def append(self, sample: FlowSample) -> None:
        # deque(maxlen) drops the oldest sample before appending when full
        self._samples.append(sample)

    def snapshot(self) -> Tuple[FlowSample, ...]:
        return tuple(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    @property
    def latest(self) -> Optional[FlowSample]:
        return self._samples[-1] if self._samples else None

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[FlowSample]:
        return iter(self.snapshot())

    def chart_points(self) -> List[Dict[str, Any]]:
        """Points for the live flow chart.

        Flows are drawn as zero while the valve is closed.
        """
        return [
            {
                "time": sample.time_label,
                "inlet": sample.inlet if sample.valve_open else 0.0,
                "outlet": sample.outlet if sample.valve_open else 0.0,
                "timestamp": int(sample.observed_at.timestamp() * 1000),
            }
            for sample in self.snapshot()
        ]


class TelemetrySubscriptionManager:
    """Merges the inlet, outlet and valve channels into one update stream."""

    def __init__(self, feed: RealtimeFeed, paths: FeedPaths = DEFAULT_PATHS) -> None:
        self.feed = feed
        self.paths = paths
        self._inlet: Optional[float] = None
        self._outlet: Optional[float] = None
        self._valve: Optional[ValveStatus] = None
        # path of the channel behind the most recent delivery
        self.last_channel: Optional[str] = None

    @property
    def inlet_known(self) -> bool:
        return self._inlet is not None

    @property
    def latest(self) -> Tuple[float, float, bool]:
        """Last known ``(inlet, outlet, valve_open)``.

        Unknown flows read as 0 and an unknown valve reads as open.
        """
        return (
            self._inlet if self._inlet is not None else 0.0,
            self._outlet if self._outlet is not None else 0.0,
            self._valve is not ValveStatus.CLOSED,
        )

    def subscribe(self, on_update: UpdateCallback) -> Subscription:
        """Call ``on_update(inlet, outlet, valve_open)`` on every channel change.

        Returns a handle that stops all three channels.
        """
        channels: List[Subscription] = []

        def cancel_channels() -> None:
            for channel in channels:
                channel.cancel()
            debug_logger.debug("Telemetry subscription cancelled")

        handle = Subscription(cancel_channels)

        def deliver() -> None:
            if handle.active:
                on_update(*self.latest)

        def on_inlet(value: Any) -> None:
            flow = _to_flow(value, "inlet")
            if flow is None or not handle.active:
                return
            self._inlet = flow
            self.last_channel = self.paths.incoming
            deliver()

        def on_outlet(value: Any) -> None:
            flow = _to_flow(value, "outlet")
            if flow is None or not handle.active:
                return
            self._outlet = flow
            self.last_channel = self.paths.outgoing
            deliver()

        def on_valve(value: Any) -> None:
            if value is None or not handle.active:
                return
            self._valve = ValveStatus.from_value(value)
            self.last_channel = self.paths.valve_status
            deliver()

        for path, callback in (
            (self.paths.incoming, on_inlet),
            (self.paths.outgoing, on_outlet),
            (self.paths.valve_status, on_valve),
        ):
            channel = self.feed.subscribe(path, callback)
            channels.append(channel)
            if not handle.active:
                channel.cancel()

        debug_logger.debug("Telemetry subscription started")
        return handle


class FlowMonitor:
    """Derived flow state: latest sample, leak flag and chart history."""

    def __init__(
        self,
        manager: TelemetrySubscriptionManager,
        capacity: int = SERIES_CAPACITY,
        threshold: float = LEAK_THRESHOLD,
    ) -> None:
        self.manager = manager
        self.threshold = threshold
        self.series = FlowSeries(capacity)
        self.state: Optional[FlowState] = None
        self.connected = False
        self._subscription: Optional[Subscription] = None
        self._listeners: List[StateListener] = []

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def leak_detected(self) -> bool:
        return self.state.leak_detected if self.state else False

    def start(self) -> "FlowMonitor":
        if not self.running:
            self._subscription = self.manager.subscribe(self._on_update)
        return self

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def __enter__(self) -> "FlowMonitor":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def add_listener(self, listener: StateListener) -> Subscription:
        """Call ``listener`` with the new ``FlowState`` after every sample."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(remove)

    def _on_update(self, inlet: float, outlet: float, valve_open: bool) -> None:
        if self.manager.inlet_known:
            self.connected = True

        sample = FlowSample(inlet=inlet, outlet=outlet, valve_open=valve_open)
        self.series.append(sample)
        self.state = FlowState(
            sample=sample,
            leak_detected=evaluate_leak(inlet, outlet, self.threshold),
            valve_reported=self.manager.last_channel == self.manager.paths.valve_status,
        )
        if self.state.leak_detected:
            debug_logger.debug(f"Leak flag set: difference {sample.difference:.1f}")

        for listener in list(self._listeners):
            listener(self.state)
