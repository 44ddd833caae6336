from typing import Optional
from hydrogram import raw
from webview_gateway.peer_cache import PEER_CHANNEL, PEER_CHAT, PEER_USER, CachedPeer


def input_user(peer: Optional[CachedPeer]) -> Optional[raw.types.InputUser]:
    if peer is None or peer.type != PEER_USER or peer.access_hash is None:
        return None
    return raw.types.InputUser(user_id=peer.id, access_hash=peer.access_hash)


def input_peer(peer: Optional[CachedPeer]) -> Optional[raw.base.InputPeer]:
    if peer is None:
        return None

    if peer.type == PEER_USER:
        if peer.access_hash is None:
            return None
        return raw.types.InputPeerUser(user_id=peer.id, access_hash=peer.access_hash)

    if peer.type == PEER_CHAT:
        return raw.types.InputPeerChat(chat_id=peer.raw_id)

    if peer.type == PEER_CHANNEL:
        if peer.access_hash is None:
            return None
        return raw.types.InputPeerChannel(channel_id=peer.raw_id, access_hash=peer.access_hash)

    return None
