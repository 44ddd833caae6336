import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set
from webview_gateway.keep_alive import KeepAlive
from webview_gateway.web_view_types import WebViewResult

ExpiredCallback = Callable[[int, BaseException], Awaitable[None]]


class WebViewSessions:
    """Open web views by query id, each with its keep-alive running."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._sessions: Dict[int, KeepAlive] = {}
        self._callbacks: Set[asyncio.Task] = set()

    def __contains__(self, query_id: int) -> bool:
        return query_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self, result: WebViewResult, on_expired: Optional[ExpiredCallback] = None) -> KeepAlive:
        query_id = result.query_id
        self.close(query_id)

        keep_alive = result.keep_alive

        def handle_error(error: BaseException) -> None:
            if self._sessions.get(query_id) is keep_alive:
                del self._sessions[query_id]
            self.logger.warning("Web view session expired", extra={
                'query_id': query_id,
                'error': repr(error),
            })
            if on_expired is None:
                return
            task = asyncio.create_task(on_expired(query_id, error))
            self._callbacks.add(task)
            task.add_done_callback(self._callbacks.discard)

        keep_alive.on_error = handle_error
        keep_alive.start()
        self._sessions[query_id] = keep_alive
        self.logger.info("Web view session opened", extra={'query_id': query_id})
        return keep_alive

    def close(self, query_id: int) -> bool:
        keep_alive = self._sessions.pop(query_id, None)
        if keep_alive is None:
            return False
        keep_alive.cancel()
        self.logger.info("Web view session closed", extra={
            'query_id': query_id,
            'polls': keep_alive.polls,
        })
        return True

    async def close_all(self) -> int:
        keep_alives = list(self._sessions.values())
        for query_id in list(self._sessions):
            self.close(query_id)
        # a loop may have failed just before it was cancelled; its error already went to on_expired
        await asyncio.gather(*(keep_alive.wait() for keep_alive in keep_alives), return_exceptions=True)
        if self._callbacks:
            await asyncio.gather(*self._callbacks, return_exceptions=True)
        return len(keep_alives)
