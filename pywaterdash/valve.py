"""Valve commands written to the feed's command namespace."""
import logging

from .feed import DEFAULT_PATHS, FeedPaths, RealtimeFeed
from .models import ValveCommand

main_logger = logging.getLogger('waterdash.main')


class ValveCommandEmitter:
    """Turns an open/close intent into the ``manualOpen``/``manualClose`` pair.

    The hardware controller reads both flags and reports the resulting
    position on the valve status channel; nothing here waits for that.
    """

    def __init__(self, feed: RealtimeFeed, paths: FeedPaths = DEFAULT_PATHS) -> None:
        self.feed = feed
        self.paths = paths

    async def request_valve_state(self, open: bool) -> None:
        """Write ``manualOpen = open`` then ``manualClose = not open``.

        Store errors propagate to the caller.
        """
        main_logger.info(f"Requesting valve {'OPEN' if open else 'CLOSE'}")
        await self.feed.set_value(self.paths.manual_open, bool(open))
        await self.feed.set_value(self.paths.manual_close, not open)

    async def send(self, command: ValveCommand) -> None:
        await self.request_valve_state(command is ValveCommand.OPEN)
