import logging
from hydrogram import Client
from injector import CallableProvider, InstanceProvider, Module, provider, singleton
from webview_gateway.core.service_container import ServiceContainer
from webview_gateway.core.settings import GatewaySettings
from webview_gateway.peer_cache import PeerCache
from webview_gateway.telegram_transport import TelegramTransport
from webview_gateway.update_pipeline import BrokerUpdatePipeline, ClientUpdatePipeline, UpdatePipeline
from webview_gateway.web_view_api import WebViewApi
from webview_gateway.web_view_sessions import WebViewSessions
from webview_gateway.web_view_types import RandomIdSource


class AppModule(Module):
    def __init__(self, ctx: ServiceContainer, telegram_app: Client) -> None:
        self.ctx = ctx
        self.telegram_app = telegram_app

    def configure(self, binder):
        settings = self.ctx.settings

        binder.bind(ServiceContainer, to=InstanceProvider(self.ctx))
        binder.bind(GatewaySettings, to=InstanceProvider(settings))
        binder.bind(logging.Logger, to=InstanceProvider(self.ctx.logger))
        binder.bind(Client, to=InstanceProvider(self.telegram_app))

        binder.bind(
            PeerCache,
            to=CallableProvider(lambda: PeerCache(
                redis=self.ctx.redis, logger=self.ctx.logger)),
            scope=singleton,
        )

        binder.bind(
            TelegramTransport,
            to=CallableProvider(lambda: TelegramTransport(
                self.telegram_app, platform=settings.webview.platform, logger=self.ctx.logger)),
            scope=singleton,
        )

        def update_pipeline_factory() -> UpdatePipeline:
            if settings.webview.updates_mode == "broker":
                return BrokerUpdatePipeline(self.ctx, routing_key=settings.webview.updates_routing_key)
            return ClientUpdatePipeline(self.telegram_app, logger=self.ctx.logger)

        binder.bind(
            UpdatePipeline,
            to=CallableProvider(update_pipeline_factory),
            scope=singleton,
        )

        binder.bind(RandomIdSource, to=CallableProvider(lambda: RandomIdSource()), scope=singleton)

        binder.bind(
            WebViewSessions,
            to=CallableProvider(lambda: WebViewSessions(logger=self.ctx.logger)),
            scope=singleton,
        )

    @singleton
    @provider
    def provide_web_view_api(
        self,
        peers: PeerCache,
        transport: TelegramTransport,
        updates: UpdatePipeline,
        random_ids: RandomIdSource,
    ) -> WebViewApi:
        return WebViewApi(
            peers=peers,
            transport=transport,
            updates=updates,
            random_ids=random_ids,
            keep_alive_interval=self.ctx.settings.webview.keep_alive_seconds,
            logger=self.ctx.logger,
        )
