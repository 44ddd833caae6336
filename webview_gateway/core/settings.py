from dataclasses import dataclass
import os
from typing import Mapping, Optional


class ConfigurationError(ValueError):
    """Raised when a required group of environment variables is missing or malformed."""
    pass


UPDATES_MODES = ("client", "broker")


def _int(environ: Mapping[str, str], key: str, default: Optional[int] = None) -> Optional[int]:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class TelegramSettings:
    api_id: int
    api_hash: str
    session_name: str = "account_session"


@dataclass(frozen=True)
class RabbitMqSettings:
    user: str
    password: str
    host: str
    port: int
    vhost: str = "/"

    @property
    def url(self) -> str:
        return f"amqp://{self.user}:{self.password}@{self.host}:{self.port}{self.vhost}"

    @property
    def safe_url(self) -> str:
        return f"amqp://{self.user}:***@{self.host}:{self.port}{self.vhost}"


@dataclass(frozen=True)
class RedisSettings:
    host: str
    port: int
    password: str
    db: int = 0


@dataclass(frozen=True)
class WebViewSettings:
    platform: str = "android"
    keep_alive_seconds: float = 60.0
    commands_queue: str = "webview_commands"
    events_queue: str = "webview_events"
    updates_mode: str = "client"
    updates_routing_key: str = "telegram_events"


@dataclass(frozen=True)
class GatewaySettings:
    telegram: TelegramSettings
    rabbitmq: RabbitMqSettings
    redis: RedisSettings
    webview: WebViewSettings
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewaySettings":
        env = os.environ if environ is None else environ

        # --- Telegram ---
        api_id = _int(env, "TELEGRAM_ID")
        api_hash = env.get("TELEGRAM_HASH")
        if not all([api_id, api_hash]):
            raise ConfigurationError("Incomplete Telegram configuration")

        # --- RabbitMQ ---
        rabbitmq_user = env.get("RABBITMQ_USER")
        rabbitmq_pass = env.get("RABBITMQ_PASS")
        rabbitmq_host = env.get("RABBITMQ_HOST")
        rabbitmq_port = _int(env, "RABBITMQ_PORT")
        if not all([rabbitmq_user, rabbitmq_pass, rabbitmq_host, rabbitmq_port]):
            raise ConfigurationError("Incomplete RabbitMQ configuration")

        # --- Redis ---
        redis_host = env.get("REDIS_HOST")
        redis_port = _int(env, "REDIS_PORT")
        redis_password = env.get("REDIS_PASSWORD")
        if not all([redis_host, redis_port, redis_password]):
            raise ConfigurationError("Incomplete Redis configuration")

        # --- Web view ---
        updates_mode = env.get("WEBVIEW_UPDATES_MODE", "client")
        if updates_mode not in UPDATES_MODES:
            raise ConfigurationError(
                f"WEBVIEW_UPDATES_MODE must be one of {UPDATES_MODES}, got {updates_mode!r}")

        try:
            keep_alive_seconds = float(env.get("WEBVIEW_KEEP_ALIVE_SECONDS", "60"))
        except ValueError:
            raise ConfigurationError("WEBVIEW_KEEP_ALIVE_SECONDS must be a number")
        if keep_alive_seconds <= 0:
            raise ConfigurationError("WEBVIEW_KEEP_ALIVE_SECONDS must be positive")

        return cls(
            telegram=TelegramSettings(
                api_id=api_id,
                api_hash=api_hash,
                session_name=env.get("TELEGRAM_SESSION", "account_session"),
            ),
            rabbitmq=RabbitMqSettings(
                user=rabbitmq_user,
                password=rabbitmq_pass,
                host=rabbitmq_host,
                port=rabbitmq_port,
                vhost=env.get("RABBITMQ_VHOST", "/"),
            ),
            redis=RedisSettings(
                host=redis_host,
                port=redis_port,
                password=redis_password,
                db=_int(env, "REDIS_DB", 0),
            ),
            webview=WebViewSettings(
                platform=env.get("WEBVIEW_PLATFORM", "android"),
                keep_alive_seconds=keep_alive_seconds,
                commands_queue=env.get("WEBVIEW_COMMANDS_QUEUE", "webview_commands"),
                events_queue=env.get("WEBVIEW_EVENTS_QUEUE", "webview_events"),
                updates_mode=updates_mode,
                updates_routing_key=env.get("WEBVIEW_UPDATES_ROUTING_KEY", "telegram_events"),
            ),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
