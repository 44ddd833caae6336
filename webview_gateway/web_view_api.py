import asyncio
import logging
from typing import Any, Iterable, Optional
from hydrogram import raw
from redis.exceptions import RedisError
from webview_gateway.input_peers import input_peer, input_user
from webview_gateway.keep_alive import DEFAULT_KEEP_ALIVE_INTERVAL, KeepAlive, Sleep
from webview_gateway.peer_cache import PeerCache, merge_peer, peer_from_user
from webview_gateway.telegram_transport import TelegramTransport, TransportError
from webview_gateway.update_pipeline import UpdatePipeline
from webview_gateway.web_view_requests import (
    SendWebViewDataRequest,
    SimpleWebViewRequest,
    WebViewRequest,
)
from webview_gateway.web_view_types import (
    BotIcon,
    KeepWebViewError,
    RandomIdSource,
    RequestSimpleWebViewError,
    RequestWebViewError,
    SendWebViewDataError,
    ThemeParams,
    WebViewConfirmationRequired,
    WebViewResult,
    serialize_theme_params,
)

# at layer 181 messages.requestWebView only returns WebViewResultUrl; the bot + users
# confirmation shape (AttachMenuBotsBot) is not produced by this call on the current schema
# and is only reached from injected transports
CONFIRMATION_RESULTS = ("types.WebViewResultConfirmationRequired", "types.AttachMenuBotsBot")
URL_RESULTS = ("types.WebViewResultUrl",)

DEFAULT_ICON_NAMES = ("default_static", "placeholder_static")


def pick_bot_icon(bot: Any, preferred_names: Iterable[str] = DEFAULT_ICON_NAMES) -> Optional[BotIcon]:
    if not isinstance(bot, raw.types.AttachMenuBot):
        return None

    icons = list(bot.icons or [])
    by_name = {icon.name: icon for icon in icons}
    for name in preferred_names:
        if name in by_name:
            bot_icon = BotIcon.from_document(by_name[name].icon, name=name)
            if bot_icon is not None:
                return bot_icon

    for icon in icons:
        bot_icon = BotIcon.from_document(icon.icon, name=icon.name)
        if bot_icon is not None:
            return bot_icon
    return None


class WebViewApi:
    def __init__(
        self,
        peers: PeerCache,
        transport: TelegramTransport,
        updates: UpdatePipeline,
        random_ids: Optional[RandomIdSource] = None,
        keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        sleep: Sleep = asyncio.sleep,
        icon_names: Iterable[str] = DEFAULT_ICON_NAMES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.peers = peers
        self.transport = transport
        self.updates = updates
        self.random_ids = random_ids or RandomIdSource()
        self.keep_alive_interval = keep_alive_interval
        self.sleep = sleep
        self.icon_names = tuple(icon_names)
        self.logger = logger or logging.getLogger(__name__)

    async def request_simple_web_view(self, bot_id: int, url: str,
                                      theme_params: Optional[ThemeParams] = None) -> str:
        serialized_theme_params = serialize_theme_params(theme_params)

        try:
            async with self.peers.transaction() as tx:
                bot = input_user(await tx.get_peer(bot_id))
        except RedisError as e:
            self.logger.error("Peer cache unavailable", extra={'bot_id': bot_id, 'error': repr(e)})
            raise RequestSimpleWebViewError(str(e)) from e

        if bot is None:
            self.logger.warning("Bot could not be resolved", extra={'bot_id': bot_id})
            raise RequestSimpleWebViewError(f"bot {bot_id} is not resolvable")

        request = SimpleWebViewRequest(bot=bot, url=url, theme_params=serialized_theme_params)
        try:
            result = await self.transport.request(request)
        except TransportError as e:
            raise RequestSimpleWebViewError(str(e)) from e

        result_url = getattr(result, "url", None)
        if not isinstance(result_url, str):
            self.logger.error("Unexpected simple web view response", extra={'response': repr(result)})
            raise RequestSimpleWebViewError("unexpected response")

        self.logger.info("Simple web view opened", extra={'bot_id': bot_id, 'flags': request.flags})
        return result_url

    async def request_web_view(
        self,
        peer_id: int,
        bot_id: int,
        url: Optional[str] = None,
        theme_params: Optional[ThemeParams] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> WebViewResult | WebViewConfirmationRequired | None:
        serialized_theme_params = serialize_theme_params(theme_params)

        try:
            async with self.peers.transaction() as tx:
                peer = input_peer(await tx.get_peer(peer_id))
                bot = input_user(await tx.get_peer(bot_id))
        except RedisError as e:
            self.logger.error("Peer cache unavailable", extra={'peer_id': peer_id, 'bot_id': bot_id, 'error': repr(e)})
            raise RequestWebViewError(str(e)) from e

        if peer is None or bot is None:
            self.logger.warning("Peer or bot could not be resolved", extra={
                'peer_id': peer_id,
                'bot_id': bot_id,
                'peer_resolved': peer is not None,
                'bot_resolved': bot is not None,
            })
            raise RequestWebViewError(f"peer {peer_id} or bot {bot_id} is not resolvable")

        request = WebViewRequest(
            peer=peer,
            bot=bot,
            url=url,
            theme_params=serialized_theme_params,
            reply_to_message_id=reply_to_message_id,
        )
        try:
            result = await self.transport.request(request)
        except TransportError as e:
            raise RequestWebViewError(str(e)) from e

        qualname = getattr(result, "QUALNAME", None)

        if qualname in CONFIRMATION_RESULTS:
            return await self._confirmation_required(bot_id, result)

        if qualname in URL_RESULTS and result.query_id is not None:
            self.logger.info("Web view opened", extra={
                'peer_id': peer_id,
                'bot_id': bot_id,
                'query_id': result.query_id,
                'flags': request.flags,
            })
            return WebViewResult(
                query_id=result.query_id,
                url=result.url,
                keep_alive=self.keep_alive(request, result.query_id),
            )

        self.logger.error("Unexpected web view response", extra={'response': repr(result)})
        raise RequestWebViewError("unexpected response")

    async def _confirmation_required(self, bot_id: int, result: Any) -> Optional[WebViewConfirmationRequired]:
        users = [peer_from_user(user) for user in result.users]
        try:
            async with self.peers.transaction() as tx:
                tx.update_peers(users, update=merge_peer)
        except RedisError as e:
            self.logger.error("Storing confirmation users failed", extra={'bot_id': bot_id, 'error': repr(e)})
            raise RequestWebViewError(str(e)) from e

        icon = pick_bot_icon(result.bot, self.icon_names)
        self.logger.info("Web view needs confirmation", extra={
            'bot_id': bot_id,
            'users_stored': len(users),
            'has_icon': icon is not None,
        })
        if icon is None:
            return None
        return WebViewConfirmationRequired(bot_icon=icon)

    def keep_alive(self, request: WebViewRequest, query_id: int) -> KeepAlive:
        prolong = request.prolong(query_id)

        async def poll() -> None:
            try:
                await self.transport.request(prolong)
            except TransportError as e:
                raise KeepWebViewError(str(e)) from e

        return KeepAlive(
            poll,
            interval=self.keep_alive_interval,
            sleep=self.sleep,
            logger=self.logger,
            name=f"keep-alive:{query_id}",
        )

    async def send_web_view_data(self, bot_id: int, button_text: str, data: str) -> None:
        try:
            async with self.peers.transaction() as tx:
                bot = input_user(await tx.get_peer(bot_id))
        except RedisError as e:
            self.logger.error("Peer cache unavailable", extra={'bot_id': bot_id, 'error': repr(e)})
            raise SendWebViewDataError(str(e)) from e

        if bot is None:
            self.logger.warning("Bot could not be resolved", extra={'bot_id': bot_id})
            raise SendWebViewDataError(f"bot {bot_id} is not resolvable")

        request = SendWebViewDataRequest(
            bot=bot,
            random_id=self.random_ids.next_id(),
            button_text=button_text,
            data=data,
        )
        try:
            updates = await self.transport.request(request)
        except TransportError as e:
            raise SendWebViewDataError(str(e)) from e

        # the data is already with the server at this point
        try:
            await self.updates.ingest(updates)
        except Exception:
            self.logger.exception("Update ingest failed", extra={'bot_id': bot_id})

        self.logger.info("Web view data sent", extra={'bot_id': bot_id, 'random_id': request.random_id})
