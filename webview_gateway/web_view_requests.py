from dataclasses import dataclass
from typing import Optional
from hydrogram import raw

# bit layout of the flags field, fixed by the messages.* schema
SIMPLE_WEB_VIEW_THEME_PARAMS = 1 << 0
SIMPLE_WEB_VIEW_URL = 1 << 3

WEB_VIEW_REPLY_TO = 1 << 0
WEB_VIEW_URL = 1 << 1
WEB_VIEW_THEME_PARAMS = 1 << 2


def _data_json(theme_params: Optional[str]) -> Optional[raw.types.DataJSON]:
    if theme_params is None:
        return None
    return raw.types.DataJSON(data=theme_params)


def _reply_to(reply_to_message_id: Optional[int]) -> Optional[raw.types.InputReplyToMessage]:
    if reply_to_message_id is None:
        return None
    return raw.types.InputReplyToMessage(reply_to_msg_id=reply_to_message_id)


@dataclass(frozen=True)
class SimpleWebViewRequest:
    bot: raw.base.InputUser
    url: str
    theme_params: Optional[str] = None

    @property
    def flags(self) -> int:
        flags = SIMPLE_WEB_VIEW_URL
        if self.theme_params is not None:
            flags |= SIMPLE_WEB_VIEW_THEME_PARAMS
        return flags

    def to_raw(self, platform: str) -> raw.functions.messages.RequestSimpleWebView:
        return raw.functions.messages.RequestSimpleWebView(
            bot=self.bot,
            platform=platform,
            url=self.url,
            theme_params=_data_json(self.theme_params),
        )


@dataclass(frozen=True)
class WebViewRequest:
    peer: raw.base.InputPeer
    bot: raw.base.InputUser
    url: Optional[str] = None
    theme_params: Optional[str] = None
    reply_to_message_id: Optional[int] = None

    @property
    def flags(self) -> int:
        flags = 0
        if self.url is not None:
            flags |= WEB_VIEW_URL
        if self.theme_params is not None:
            flags |= WEB_VIEW_THEME_PARAMS
        if self.reply_to_message_id is not None:
            flags |= WEB_VIEW_REPLY_TO
        return flags

    def to_raw(self, platform: str) -> raw.functions.messages.RequestWebView:
        return raw.functions.messages.RequestWebView(
            peer=self.peer,
            bot=self.bot,
            platform=platform,
            url=self.url,
            theme_params=_data_json(self.theme_params),
            reply_to=_reply_to(self.reply_to_message_id),
        )

    def prolong(self, query_id: int) -> "ProlongWebViewRequest":
        return ProlongWebViewRequest(
            peer=self.peer,
            bot=self.bot,
            query_id=query_id,
            reply_to_message_id=self.reply_to_message_id,
            flags=self.flags,
        )


@dataclass(frozen=True)
class ProlongWebViewRequest:
    peer: raw.base.InputPeer
    bot: raw.base.InputUser
    query_id: int
    reply_to_message_id: Optional[int] = None
    # same flags as the request that opened the session; the schema only reads the reply-to bit
    flags: int = 0

    def to_raw(self, platform: str) -> raw.functions.messages.ProlongWebView:
        return raw.functions.messages.ProlongWebView(
            peer=self.peer,
            bot=self.bot,
            query_id=self.query_id,
            reply_to=_reply_to(self.reply_to_message_id),
        )


@dataclass(frozen=True)
class SendWebViewDataRequest:
    bot: raw.base.InputUser
    random_id: int
    button_text: str
    data: str

    @property
    def flags(self) -> int:
        return 0

    def to_raw(self, platform: str) -> raw.functions.messages.SendWebViewData:
        return raw.functions.messages.SendWebViewData(
            bot=self.bot,
            random_id=self.random_id,
            button_text=self.button_text,
            data=self.data,
        )
