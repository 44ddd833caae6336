from hydrogram import Client
from webview_gateway.peer_cache import PeerCache


def make_raw_update_handler(peers: PeerCache):
    """keeps the peer cache warm with every user and chat the client sees"""

    async def raw_update_handler(client: Client, update, users: dict, chats: dict):
        if not users and not chats:
            return
        stored = await peers.remember(users=users.values(), chats=chats.values())
        peers.logger.debug("Peers seen in update", extra={
            'update': getattr(update, 'QUALNAME', type(update).__name__),
            'stored': stored,
        })

    return raw_update_handler
