from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, replace
import json
import logging
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional
from hydrogram import raw, utils
from redis.asyncio.client import Pipeline, Redis

PEER_USER = "user"
PEER_CHAT = "chat"
PEER_CHANNEL = "channel"


@dataclass(frozen=True)
class CachedPeer:
    """A peer as the gateway remembers it. `id` is the marked id hydrogram uses for chats and channels."""
    id: int
    type: str
    access_hash: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None
    is_bot: bool = False
    is_min: bool = False

    @property
    def raw_id(self) -> int:
        if self.type == PEER_CHAT:
            return -self.id
        if self.type == PEER_CHANNEL:
            return utils.get_channel_id(self.id)
        return self.id

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(data: str | bytes) -> "CachedPeer":
        return CachedPeer(**json.loads(data))


PeerUpdate = Callable[[Optional[CachedPeer], CachedPeer], CachedPeer]


def merge_peer(existing: Optional[CachedPeer], incoming: CachedPeer) -> CachedPeer:
    """Keeps a full record when the incoming one is a `min` (partial) copy of the same peer."""
    if existing is None:
        return incoming
    if incoming.is_min and not existing.is_min:
        return existing
    if incoming.access_hash is None and existing.access_hash is not None:
        return replace(incoming, access_hash=existing.access_hash)
    return incoming


def peer_from_user(user: raw.base.User) -> CachedPeer:
    if isinstance(user, raw.types.UserEmpty):
        # nothing known beyond the id, never worth more than what is cached
        return CachedPeer(id=user.id, type=PEER_USER, is_min=True)

    return CachedPeer(
        id=user.id,
        type=PEER_USER,
        access_hash=user.access_hash,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        is_bot=bool(user.bot),
        is_min=bool(user.min),
    )


def peer_from_chat(chat: raw.base.Chat) -> Optional[CachedPeer]:
    if isinstance(chat, (raw.types.Chat, raw.types.ChatForbidden)):
        return CachedPeer(id=-chat.id, type=PEER_CHAT, title=chat.title)

    if isinstance(chat, raw.types.Channel):
        return CachedPeer(
            id=utils.get_channel_id(chat.id),
            type=PEER_CHANNEL,
            access_hash=chat.access_hash,
            username=chat.username,
            title=chat.title,
            is_min=bool(chat.min),
        )

    if isinstance(chat, raw.types.ChannelForbidden):
        return CachedPeer(
            id=utils.get_channel_id(chat.id),
            type=PEER_CHANNEL,
            access_hash=chat.access_hash,
            title=chat.title,
        )

    return None


class PeerTransaction:
    """
    Read/write view over the peer cache.

    Reads go straight to redis, except for peers staged in this transaction.
    Staged peers are written on commit under WATCH, so a concurrent writer makes
    the merge run again against the fresh value instead of being overwritten.
    """

    def __init__(self, cache: "PeerCache") -> None:
        self._cache = cache
        self._staged: List[tuple[CachedPeer, PeerUpdate]] = []
        self._view: Dict[int, CachedPeer] = {}

    async def get_peer(self, peer_id: int) -> Optional[CachedPeer]:
        if peer_id in self._view:
            return self._view[peer_id]
        return await self._cache.get_peer(peer_id)

    def update_peers(self, peers: Iterable[CachedPeer], update: PeerUpdate = merge_peer) -> None:
        for peer in peers:
            self._staged.append((peer, update))
            self._view[peer.id] = update(self._view.get(peer.id), peer)

    async def commit(self) -> int:
        if not self._staged:
            return 0

        staged = list(self._staged)
        self._staged.clear()
        peer_ids = list(dict.fromkeys(peer.id for peer, _ in staged))
        keys = [self._cache.key(peer_id) for peer_id in peer_ids]

        async def apply(pipe: Pipeline) -> None:
            stored = await pipe.mget(keys)
            merged: Dict[int, CachedPeer] = {}
            current = {
                peer_id: CachedPeer.from_json(value)
                for peer_id, value in zip(peer_ids, stored) if value
            }

            for peer, update in staged:
                merged[peer.id] = update(merged.get(peer.id, current.get(peer.id)), peer)

            pipe.multi()
            pipe.mset({self._cache.key(peer_id): peer.to_json()
                       for peer_id, peer in merged.items()})

        await self._cache.redis.transaction(apply, *keys)
        self._cache.logger.debug("Peers committed", extra={'peer_count': len(peer_ids)})
        return len(peer_ids)


class PeerCache:
    def __init__(self, redis: Redis, key_prefix: str = "peer", logger: Optional[logging.Logger] = None) -> None:
        self.redis = redis
        self.key_prefix = key_prefix
        self.logger = logger or logging.getLogger(__name__)

    def key(self, peer_id: int) -> str:
        return f"{self.key_prefix}:{peer_id}"

    async def get_peer(self, peer_id: int) -> Optional[CachedPeer]:
        value = await self.redis.get(self.key(peer_id))
        if not value:
            return None
        return CachedPeer.from_json(value)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PeerTransaction]:
        tx = PeerTransaction(self)
        yield tx
        await tx.commit()

    async def update_peers(self, peers: Iterable[CachedPeer], update: PeerUpdate = merge_peer) -> int:
        tx = PeerTransaction(self)
        tx.update_peers(peers, update=update)
        return await tx.commit()

    async def remember(self, users: Iterable[raw.base.User] = (), chats: Iterable[raw.base.Chat] = ()) -> int:
        """merges raw users and chats seen on the wire"""
        peers = [peer_from_user(user) for user in users]
        peers += [peer for peer in map(peer_from_chat, chats) if peer is not None]
        if not peers:
            return 0
        return await self.update_peers(peers)
