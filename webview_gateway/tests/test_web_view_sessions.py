import asyncio
from webview_gateway.keep_alive import KeepAlive
from webview_gateway.web_view_sessions import WebViewSessions
from webview_gateway.web_view_types import KeepWebViewError, WebViewResult
from conftest import logger


def make_result(query_id: int, poll=None, interval: float = 60.0) -> WebViewResult:
    async def idle():
        return None

    return WebViewResult(
        query_id=query_id,
        url=f"https://app.example/{query_id}",
        keep_alive=KeepAlive(poll or idle, interval=interval, logger=logger),
    )


async def test_open_starts_keep_alive_and_close_cancels_it():
    sessions = WebViewSessions(logger=logger)
    result = make_result(1)

    sessions.open(result)
    assert 1 in sessions and len(sessions) == 1
    assert result.keep_alive.running

    assert sessions.close(1) is True
    await result.keep_alive.wait()
    assert not result.keep_alive.running
    assert 1 not in sessions
    assert sessions.close(1) is False


async def test_reopening_a_query_replaces_the_old_session():
    sessions = WebViewSessions(logger=logger)
    old, new = make_result(5), make_result(5)

    sessions.open(old)
    sessions.open(new)
    await old.keep_alive.wait()

    assert len(sessions) == 1
    assert not old.keep_alive.running
    assert new.keep_alive.running
    await sessions.close_all()


async def test_failed_keep_alive_expires_the_session():
    async def failing_poll():
        raise KeepWebViewError("session gone")

    sessions = WebViewSessions(logger=logger)
    expired = []

    async def on_expired(query_id, error):
        expired.append((query_id, error))

    result = make_result(9, poll=failing_poll, interval=0)
    sessions.open(result, on_expired=on_expired)
    for _ in range(10):
        await asyncio.sleep(0)
    await sessions.close_all()

    assert 9 not in sessions
    assert len(expired) == 1
    query_id, error = expired[0]
    assert query_id == 9 and isinstance(error, KeepWebViewError)


async def test_close_all_reports_count():
    sessions = WebViewSessions(logger=logger)
    results = [make_result(query_id) for query_id in (1, 2, 3)]
    for result in results:
        sessions.open(result)

    closed = await sessions.close_all()

    assert closed == 3
    assert len(sessions) == 0
    assert all(not result.keep_alive.running for result in results)
