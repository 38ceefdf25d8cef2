"""Real-time feed interface and subscription handles."""
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

FeedCallback = Callable[[Any], None]


class FeedPaths(BaseModel):
    """Locations of the telemetry and command values in the feed."""

    incoming: str = "waterSystem/incoming"
    outgoing: str = "waterSystem/outgoing"
    valve_status: str = "waterSystem/valveStatus"
    manual_open: str = "manualOpen"
    manual_close: str = "manualClose"

    model_config = ConfigDict(frozen=True)


DEFAULT_PATHS = FeedPaths()


class Subscription:
    """Disposable handle for a live listener.

    ``cancel()`` may be called any number of times, from inside or outside a
    callback. The handle also works as a context manager and as a plain
    callable.
    """

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()

    def __call__(self) -> None:
        self.cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()

    @classmethod
    def combine(cls, *subscriptions: "Subscription") -> "Subscription":
        """One handle that cancels all of ``subscriptions``."""
        def cancel_all() -> None:
            for subscription in subscriptions:
                subscription.cancel()
        return cls(cancel_all)


class RealtimeFeed(ABC):
    """A publish/subscribe key-value store holding telemetry and commands."""

    @abstractmethod
    def subscribe(self, path: str, callback: FeedCallback) -> Subscription:
        """Call ``callback`` with every new value at ``path``.

        The callback receives ``None`` when the path holds no value.
        """

    @abstractmethod
    async def set_value(self, path: str, value: Any) -> None:
        """Overwrite the value at ``path``."""

    @abstractmethod
    async def get_value(self, path: str) -> Any:
        """Read the current value at ``path`` once."""
