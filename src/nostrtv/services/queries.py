"""
Read side of the client: live streams, profiles, follow lists, chat and zaps.

[StreamQueries][nostrtv.services.queries.StreamQueries] runs every query
through a [SubscriptionCoordinator][nostrtv.core.subscriptions.SubscriptionCoordinator]
with the timing preset made for it, verifies and parses the returned events
and keeps a profile and follow list cache so repeated lookups stay local.

| Query                      | Kinds      | Preset          |
|----------------------------|------------|-----------------|
| ``fetch_live_streams``     | 30311      | ``discovery``   |
| ``fetch_profiles``         | 0          | ``profile``     |
| ``fetch_follow_list``      | 3          | ``follow_list`` |
| ``subscribe_chat``         | 1311       | ``chat_join``   |
| ``subscribe_zap_receipts`` | 9735       | ``zap_receipts``|

Chat and zap subscriptions stay open after their initial batch and keep
collecting into a bounded [StreamFeed][nostrtv.services.queries.StreamFeed]
until closed.

Examples:
    ```python
    async with RelayPool() as pool, SubscriptionCoordinator(pool) as coordinator:
        queries = StreamQueries(coordinator)
        streams = await queries.fetch_live_streams(with_streamers=True)
        chat = await queries.subscribe_chat(streams[0].a_tag)
        await chat.wait_initial_batch()
        for message in chat.items:
            print(message.author_name, message.content)
    ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Generic, TypeVar

from nostrtv.core.exceptions import ProtocolParseError
from nostrtv.core.logger import Logger, short_hex
from nostrtv.core.subscriptions import Preset, Subscription, SubscriptionCoordinator, TimeoutConfig
from nostrtv.models.constants import EventKind
from nostrtv.models.event import ProtocolEvent
from nostrtv.models.filter import Filter
from nostrtv.models.stream import ChatMessage, LiveStream, Profile, ZapReceipt
from nostrtv.nips.metadata import parse_profile
from nostrtv.nips.nip01 import verify_event
from nostrtv.nips.nip02 import parse_follow_list
from nostrtv.nips.nip53 import latest_streams, parse_chat_message, parse_live_stream
from nostrtv.nips.nip57 import parse_zap_receipt


LIVE_STREAM_LIMIT = 100
STREAM_EVENT_LIMIT = 200
MAX_CHAT_MESSAGES = 500
MAX_ZAP_RECEIPTS = 50

T = TypeVar("T", ChatMessage, ZapReceipt)


# ---------------------------------------------------------------------------
# StreamFeed
# ---------------------------------------------------------------------------


class StreamFeed(Generic[T]):
    """Bounded, deduplicated collection fed by one open subscription.

    Only the newest ``max_items`` items are kept. ``items`` is ordered by
    ``created_at`` (oldest first for chat, newest first for zaps) and shows
    the current profile cache's names and pictures.
    """

    def __init__(
        self,
        a_tag: str,
        subscription: Subscription,
        *,
        max_items: int,
        newest_first: bool,
        enrich: Callable[[T], T],
    ) -> None:
        self.a_tag = a_tag
        self.subscription = subscription
        self._max_items = max_items
        self._newest_first = newest_first
        self._enrich = enrich
        self._items: dict[str, T] = {}

    def __repr__(self) -> str:
        return f"StreamFeed(a_tag={self.a_tag!r}, items={len(self._items)})"

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[T]:
        ordered = sorted(
            self._items.values(), key=lambda item: item.created_at, reverse=self._newest_first
        )
        return [self._enrich(item) for item in ordered]

    @property
    def authors(self) -> set[str]:
        """Pubkeys of the people behind the collected items."""
        pubkeys: set[str] = set()
        for item in self._items.values():
            pubkey = item.pubkey if isinstance(item, ChatMessage) else item.sender_pubkey
            if pubkey:
                pubkeys.add(pubkey)
        return pubkeys

    async def wait_initial_batch(self, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        return await self.subscription.wait_initial_batch(timeout)

    async def close(self) -> None:
        await self.subscription.close()

    def add(self, item: T) -> bool:
        """Store *item* unless already present; returns True if it was new and kept."""
        if item.id in self._items:
            return False
        self._items[item.id] = item
        if len(self._items) > self._max_items:
            oldest = min(self._items.values(), key=lambda i: i.created_at)
            del self._items[oldest.id]
            return oldest is not item
        return True


# ---------------------------------------------------------------------------
# StreamQueries
# ---------------------------------------------------------------------------


class StreamQueries:
    """Live streaming queries over a subscription coordinator.

    Args:
        coordinator: Coordinator owning the relay pool's message stream.
    """

    def __init__(self, coordinator: SubscriptionCoordinator) -> None:
        self._coordinator = coordinator
        self._profiles: dict[str, Profile] = {}
        self._follow_lists: dict[str, frozenset[str]] = {}
        self._logger = Logger("queries")

    @property
    def profiles(self) -> Mapping[str, Profile]:
        """Read-only view of every cached profile."""
        return MappingProxyType(self._profiles)

    def get_profile(self, pubkey: str) -> Profile | None:
        return self._profiles.get(pubkey)

    def get_follow_list(self, pubkey: str) -> frozenset[str] | None:
        return self._follow_lists.get(pubkey)

    # -- Verification ---------------------------------------------------------

    def _verified(self, events: Iterable[ProtocolEvent]) -> list[ProtocolEvent]:
        valid = []
        for event in events:
            if verify_event(event):
                valid.append(event)
            else:
                self._logger.warning("event_signature_invalid", id=short_hex(event.id))
        return valid

    def _cache_profile(self, profile: Profile) -> None:
        current = self._profiles.get(profile.pubkey)
        if current is None or profile.created_at >= current.created_at:
            self._profiles[profile.pubkey] = profile

    # -- One-shot queries -----------------------------------------------------

    async def fetch_live_streams(
        self, *, limit: int = LIVE_STREAM_LIMIT, with_streamers: bool = False
    ) -> list[LiveStream]:
        """Return live activity announcements, newest version per stream, newest first.

        Args:
            limit: ``limit`` sent to each relay.
            with_streamers: Also fetch the hosts' profiles and fill in
                ``streamer_name``.
        """
        events = await self._coordinator.fetch(
            Filter(kinds=[EventKind.LIVE_EVENT], limit=limit),
            config=TimeoutConfig.preset(Preset.DISCOVERY),
        )
        parsed: list[LiveStream] = []
        for event in self._verified(events):
            try:
                parsed.append(parse_live_stream(event))
            except ProtocolParseError as e:
                self._logger.debug("live_stream_dropped", id=short_hex(event.id), error=str(e))
        streams = latest_streams(parsed)

        if with_streamers and streams:
            await self.fetch_profiles(s.streamer_pubkey for s in streams)
        result = []
        for stream in streams:
            profile = self._profiles.get(stream.streamer_pubkey)
            if profile is not None:
                stream = stream.with_streamer_name(profile.display_name_or_name)
            result.append(stream)
        self._logger.info("live_streams_fetched", events=len(events), streams=len(result))
        return result

    async def fetch_profiles(self, pubkeys: Iterable[str]) -> dict[str, Profile]:
        """Return the profiles of *pubkeys*, querying relays only for uncached ones.

        Pubkeys without a published profile are absent from the result.

        Raises:
            ValueError: If a pubkey is not 64 hex characters.
        """
        requested = list(dict.fromkeys(pk.lower() for pk in pubkeys))
        unknown = [pk for pk in requested if pk not in self._profiles]
        if unknown:
            events = await self._coordinator.fetch(
                Filter(kinds=[EventKind.METADATA], authors=unknown),
                config=TimeoutConfig.preset(Preset.PROFILE),
            )
            wanted = set(unknown)
            for event in self._verified(events):
                if event.pubkey not in wanted:
                    continue
                try:
                    self._cache_profile(parse_profile(event))
                except ProtocolParseError as e:
                    self._logger.debug(
                        "profile_dropped", pubkey=short_hex(event.pubkey), error=str(e)
                    )
            self._logger.debug(
                "profiles_fetched",
                requested=len(unknown),
                found=sum(1 for pk in unknown if pk in self._profiles),
            )
        return {pk: self._profiles[pk] for pk in requested if pk in self._profiles}

    async def fetch_follow_list(self, pubkey: str, *, refresh: bool = False) -> frozenset[str]:
        """Return the pubkeys *pubkey* follows (empty if no follow list was found).

        Raises:
            ValueError: If *pubkey* is not 64 hex characters.
        """
        pubkey = pubkey.lower()
        cached = self._follow_lists.get(pubkey)
        if cached is not None and not refresh:
            return cached

        events = await self._coordinator.fetch(
            Filter(kinds=[EventKind.CONTACTS], authors=[pubkey], limit=1),
            config=TimeoutConfig.preset(Preset.FOLLOW_LIST),
        )
        for event in self._verified(events):
            if event.pubkey != pubkey:
                continue
            follows = parse_follow_list(event)
            self._follow_lists[pubkey] = follows
            self._logger.debug(
                "follow_list_fetched", pubkey=short_hex(pubkey), follows=len(follows)
            )
            return follows
        return cached or frozenset()

    # -- Live feeds -----------------------------------------------------------

    async def subscribe_chat(
        self,
        a_tag: str,
        *,
        limit: int = STREAM_EVENT_LIMIT,
        on_message: Callable[[ChatMessage], None] | None = None,
    ) -> StreamFeed[ChatMessage]:
        """Open a chat subscription for the stream at *a_tag*.

        Args:
            a_tag: Stream address ``30311:<pubkey>:<d>``.
            limit: Stored messages requested from each relay.
            on_message: Called for every new message as it arrives.
        """
        return await self._open_feed(
            a_tag,
            EventKind.LIVE_CHAT,
            Preset.CHAT_JOIN,
            limit=limit,
            max_items=MAX_CHAT_MESSAGES,
            newest_first=False,
            parse=parse_chat_message,
            enrich=lambda m: m.with_author(self._profiles.get(m.pubkey)),
            callback=on_message,
        )

    async def subscribe_zap_receipts(
        self,
        a_tag: str,
        *,
        limit: int = STREAM_EVENT_LIMIT,
        on_zap: Callable[[ZapReceipt], None] | None = None,
    ) -> StreamFeed[ZapReceipt]:
        """Open a zap receipt subscription for the stream at *a_tag*."""
        return await self._open_feed(
            a_tag,
            EventKind.ZAP_RECEIPT,
            Preset.ZAP_RECEIPTS,
            limit=limit,
            max_items=MAX_ZAP_RECEIPTS,
            newest_first=True,
            parse=parse_zap_receipt,
            enrich=lambda z: z.with_sender(
                self._profiles.get(z.sender_pubkey) if z.sender_pubkey else None
            ),
            callback=on_zap,
        )

    async def _open_feed(  # noqa: PLR0913
        self,
        a_tag: str,
        kind: EventKind,
        preset: Preset,
        *,
        limit: int,
        max_items: int,
        newest_first: bool,
        parse: Callable[[ProtocolEvent], T],
        enrich: Callable[[T], T],
        callback: Callable[[T], None] | None,
    ) -> StreamFeed[T]:
        if not a_tag.strip():
            raise ValueError("a_tag must not be empty")
        feed: StreamFeed[T] | None = None
        early: list[T] = []

        def on_event(event: ProtocolEvent, relay_url: str) -> None:
            if not verify_event(event):
                self._logger.warning(
                    "event_signature_invalid", id=short_hex(event.id), url=relay_url
                )
                return
            try:
                item = parse(event)
            except ProtocolParseError as e:
                self._logger.debug("feed_event_dropped", id=short_hex(event.id), error=str(e))
                return
            # events can arrive before subscribe() returns the handle
            if feed is None:
                early.append(item)
            elif feed.add(item) and callback is not None:
                callback(enrich(item))

        subscription = await self._coordinator.subscribe(
            Filter(kinds=[kind], tag_filters={"a": [a_tag]}, limit=limit),
            config=TimeoutConfig.preset(preset),
            on_event=on_event,
        )
        feed = StreamFeed(
            a_tag, subscription, max_items=max_items, newest_first=newest_first, enrich=enrich
        )
        for item in early:
            if feed.add(item) and callback is not None:
                callback(enrich(item))
        self._logger.info("feed_opened", stream=a_tag, kind=int(kind), subscription=subscription.id)
        return feed


__all__ = [
    "MAX_CHAT_MESSAGES",
    "MAX_ZAP_RECEIPTS",
    "StreamFeed",
    "StreamQueries",
]
