import asyncio
import logging
from typing import Awaitable, Callable, Optional

DEFAULT_KEEP_ALIVE_INTERVAL = 60.0

Sleep = Callable[[float], Awaitable[None]]
Poll = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[BaseException], None]


class KeepAlive:
    """
    Re-asserts a web view session every `interval` seconds until cancelled.

    Nothing happens until `start()` (or `run()`, or `async with`). Each cycle sleeps
    first and then polls, so the first poll never happens before one full interval.
    A poll that raises ends the loop; the error reaches whoever is subscribed
    (`run()` raises it, `wait()` re-raises it, `on_error` receives it) and the loop
    is not restarted.
    """

    def __init__(
        self,
        poll: Poll,
        interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        sleep: Sleep = asyncio.sleep,
        on_error: Optional[ErrorCallback] = None,
        logger: Optional[logging.Logger] = None,
        name: str = "keep-alive",
    ) -> None:
        self._poll = poll
        self.interval = interval
        self._sleep = sleep
        self.on_error = on_error
        self.logger = logger or logging.getLogger(__name__)
        self.name = name
        self.polls = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self) -> None:
        while True:
            await self._sleep(self.interval)
            await self._poll()
            self.polls += 1
            self.logger.debug(f"{self.name} poll sent", extra={'polls': self.polls})

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.create_task(self.run(), name=self.name)
        self._task.add_done_callback(self._on_done)
        return self._task

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.logger.debug(f"{self.name} cancelled", extra={'polls': self.polls})
            return
        error = task.exception()
        if error is None:
            return
        self.logger.warning(f"{self.name} stopped", extra={'error': repr(error), 'polls': self.polls})
        if self.on_error is not None:
            self.on_error(error)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Waits for the loop to end. Returns quietly after a cancel, raises the poll error otherwise."""
        if self._task is None:
            raise RuntimeError(f"{self.name} was never started")
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            self._task.result()

    async def __aenter__(self) -> "KeepAlive":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()
        if self._task is not None:
            await asyncio.wait({self._task})
