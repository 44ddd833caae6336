import logging
from typing import Optional
import aio_pika
from aio_pika.abc import AbstractRobustConnection, AbstractRobustChannel
import redis.asyncio as redis
from redis.asyncio.client import Redis
from webview_gateway.core.event_envelope import EventEnvelope
from webview_gateway.core.logger import get_logger
from webview_gateway.core.settings import GatewaySettings


class ServiceContainer:
    logger: logging.Logger
    settings: GatewaySettings
    connection: Optional[AbstractRobustConnection]
    channel: Optional[AbstractRobustChannel]
    redis: Optional[Redis]

    def __init__(self, logger: logging.Logger, settings: GatewaySettings) -> None:
        self.logger = logger
        self.settings = settings
        self.connection = None
        self.channel = None
        self.redis = None

    async def connect(self) -> None:
        rabbitmq = self.settings.rabbitmq
        self.logger.info(f"Connecting to RabbitMQ: {rabbitmq.safe_url}")
        self.connection = await aio_pika.connect_robust(rabbitmq.url)
        self.channel = await self.connection.channel()
        self.logger.info("Connected to RabbitMQ")

    async def safe_publish(self, routing_key: str, body: str, exchange_name: str = '') -> None:
        if (self.connection is None or self.connection.is_closed or
                self.channel is None or self.channel.is_closed):
            self.logger.warning(
                "Connection or channel closed, reconnecting...")
            await self.connect()

        exchange: aio_pika.abc.AbstractExchange
        if exchange_name:
            exchange = await self.channel.get_exchange(exchange_name)
        else:
            exchange = self.channel.default_exchange

        await exchange.publish(
            aio_pika.Message(body=body.encode(), content_type="application/json"),
            routing_key=routing_key
        )
        self.logger.info(f"Published message to {routing_key}")

    async def publish_event(self, envelope: EventEnvelope, routing_key: Optional[str] = None) -> None:
        await self.safe_publish(
            routing_key=routing_key or self.settings.webview.events_queue,
            body=envelope.to_json(),
            exchange_name='',
        )

    async def close(self) -> None:
        if self.channel and not self.channel.is_closed:
            await self.channel.close()
        if self.connection and not self.connection.is_closed:
            await self.connection.close()
        self.logger.info("Closed RabbitMQ connection")
        if self.redis is not None:
            await self.redis.aclose()
            self.logger.info("Closed Redis connection")

    @classmethod
    async def create(cls, settings: GatewaySettings, log_name: str = "WebViewGateway") -> "ServiceContainer":
        logger = get_logger(name=log_name, level=settings.log_level)
        self = cls(logger, settings)

        # --- RabbitMQ Setup ---
        await self.connect()

        # --- Redis Setup ---
        redis_settings = settings.redis
        self.redis = redis.Redis(
            host=redis_settings.host,
            port=redis_settings.port,
            db=redis_settings.db,
            password=redis_settings.password,
        )

        # raises when redis is unreachable
        pong = await self.redis.ping()
        if pong:
            logger.info(
                f"Connected to Redis at {redis_settings.host}:{redis_settings.port} [db={redis_settings.db}]")

        return self
