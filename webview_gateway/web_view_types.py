from dataclasses import dataclass
import json
import logging
import random
from typing import TYPE_CHECKING, Any, Mapping, Optional
from hydrogram import raw

if TYPE_CHECKING:
    from webview_gateway.keep_alive import KeepAlive

ThemeParams = Mapping[str, Any]

logger = logging.getLogger(__name__)


class WebViewError(Exception):
    """Base class for the web view flows. Each flow raises exactly one subclass."""

    def __init__(self, message: str = "generic") -> None:
        super().__init__(message)


class RequestSimpleWebViewError(WebViewError):
    pass


class RequestWebViewError(WebViewError):
    pass


class KeepWebViewError(WebViewError):
    pass


class SendWebViewDataError(WebViewError):
    pass


@dataclass(frozen=True)
class BotIcon:
    id: int
    access_hash: int
    file_reference: bytes
    mime_type: str
    size: int
    dc_id: int
    name: Optional[str] = None

    @staticmethod
    def from_document(document: Optional[raw.base.Document], name: Optional[str] = None) -> Optional["BotIcon"]:
        if not isinstance(document, raw.types.Document):
            return None
        return BotIcon(
            id=document.id,
            access_hash=document.access_hash,
            file_reference=document.file_reference,
            mime_type=document.mime_type,
            size=document.size,
            dc_id=document.dc_id,
            name=name,
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'access_hash': self.access_hash,
            'file_reference': self.file_reference.hex(),
            'mime_type': self.mime_type,
            'size': self.size,
            'dc_id': self.dc_id,
            'name': self.name,
        }


@dataclass(frozen=True)
class WebViewResult:
    query_id: int
    url: str
    keep_alive: "KeepAlive"


@dataclass(frozen=True)
class WebViewConfirmationRequired:
    bot_icon: BotIcon


def serialize_theme_params(theme_params: Optional[ThemeParams]) -> Optional[str]:
    """
    Compact JSON text for the theme params, or None.

    A mapping that cannot be represented as JSON (non-string keys that json cannot
    coerce, NaN/Infinity, arbitrary objects) is dropped as a whole and logged; the
    request then goes out without theme params.
    """
    if theme_params is None:
        return None
    try:
        return json.dumps(dict(theme_params), separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.warning("Theme params are not JSON serializable, dropping them",
                       extra={'error': str(e)})
        return None


class RandomIdSource:
    """Signed 64-bit random ids, the range the server expects for deduplication tokens."""

    MIN = -(2 ** 63)
    MAX = 2 ** 63 - 1

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.SystemRandom()

    def next_id(self) -> int:
        return self._rng.randint(self.MIN, self.MAX)
