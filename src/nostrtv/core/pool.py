"""
Multi-relay connection pool.

[RelayPool][nostrtv.core.pool.RelayPool] owns one
[RelayLink][nostrtv.utils.transport.RelayLink] per relay URL, merges their
inbound frames into a single stream of
[RelayEnvelope][nostrtv.core.pool.RelayEnvelope] values tagged with the
originating relay, and publishes one aggregate
[ConnectionState][nostrtv.models.constants.ConnectionState]:

* ``CONNECTING`` while links are being opened and none is open yet,
* ``CONNECTED`` as soon as the first link opens,
* ``DISCONNECTED`` only once no link remains open.

Writes are best effort: [broadcast()][nostrtv.core.pool.RelayPool.broadcast]
sends to every currently open link and returns how many accepted the frame.
Links that are not open silently miss the write; callers that need delivery
re-send after reconnecting.

Malformed relay frames are logged and dropped, never propagated.

See Also:
    [SubscriptionCoordinator][nostrtv.core.subscriptions.SubscriptionCoordinator]:
        Consumes the merged stream and tracks EOSE per subscription.
    [RelayPoolConfig][nostrtv.core.pool.RelayPoolConfig]: Relay list and link
        settings.

Examples:
    ```python
    pool = RelayPool.from_dict({"relays": ["wss://relay.damus.io", "wss://nos.lol"]})

    async with pool:
        await pool.subscribe("feed", Filter(kinds=[1], limit=20))
        async for envelope in pool.messages():
            print(envelope.relay_url, envelope.message)
    ```
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Final

from pydantic import BaseModel, Field, field_validator

from nostrtv.models.constants import ConnectionState
from nostrtv.models.event import ProtocolEvent
from nostrtv.models.filter import Filter
from nostrtv.models.relay import normalize_relay_url
from nostrtv.nips.messages import (
    NoticeMessage,
    RelayMessage,
    close_message,
    event_message,
    parse_relay_message,
    req_message,
)
from nostrtv.utils.transport import (
    Link,
    LinkConnected,
    LinkDisconnected,
    LinkError,
    LinkFactory,
    LinkMessage,
    RelayLink,
    RelayLinkConfig,
)

from .exceptions import ProtocolParseError
from .logger import Logger
from .metrics import RELAY_LINKS_OPEN, RELAY_MESSAGES_TOTAL
from .yaml import load_yaml


DEFAULT_RELAYS: Final[tuple[str, ...]] = (
    "wss://relay.damus.io",
    "wss://relay.nostr.band",
    "wss://relay.snort.social",
    "wss://nostr.wine",
    "wss://relay.primal.net",
    "wss://nos.lol",
    "wss://relay.fountain.fm",
    "wss://relay.divine.video",
    "wss://purplepag.es",
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RelayPoolConfig(BaseModel):
    """Relay list and per-link WebSocket settings.

    See Also:
        [RelayLinkConfig][nostrtv.utils.transport.RelayLinkConfig]: Settings
            applied to every link.
    """

    relays: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELAYS),
        description="Relay URLs to connect to",
    )
    link: RelayLinkConfig = Field(default_factory=RelayLinkConfig)

    @field_validator("relays")
    @classmethod
    def normalize_relays(cls, v: list[str]) -> list[str]:
        """Normalize every URL and drop duplicates, keeping order."""
        return list(dict.fromkeys(normalize_relay_url(url) for url in v))


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RelayEnvelope:
    """A parsed relay message and the relay it came from."""

    relay_url: str
    message: RelayMessage


StateListener = Callable[[ConnectionState], None]


# ---------------------------------------------------------------------------
# RelayPool
# ---------------------------------------------------------------------------


class RelayPool:
    """Fan-out/fan-in pool of relay links.

    Supports direct instantiation with a
    [RelayPoolConfig][nostrtv.core.pool.RelayPoolConfig] or the factory
    methods [from_yaml()][nostrtv.core.pool.RelayPool.from_yaml] /
    [from_dict()][nostrtv.core.pool.RelayPool.from_dict].

    The merged stream has a single consumer: iterate
    [messages()][nostrtv.core.pool.RelayPool.messages] from one task only.
    """

    def __init__(
        self,
        config: RelayPoolConfig | None = None,
        *,
        link_factory: LinkFactory | None = None,
    ) -> None:
        """Create a disconnected pool.

        Args:
            config: Pool configuration; defaults to the built-in relay list.
            link_factory: Builds a link for a URL. Defaults to
                [RelayLink][nostrtv.utils.transport.RelayLink] with
                ``config.link`` settings.
        """
        self._config = config or RelayPoolConfig()
        self._link_factory: LinkFactory = link_factory or self._default_link
        self._links: dict[str, Link] = {}
        self._pumps: dict[str, asyncio.Task[None]] = {}
        self._open: set[str] = set()
        self._connecting = 0
        self._state = ConnectionState.DISCONNECTED
        self._last_error: str | None = None
        self._connected_event = asyncio.Event()
        self._listeners: list[StateListener] = []
        self._inbox: asyncio.Queue[RelayEnvelope | None] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._logger = Logger("pool")

    def _default_link(self, url: str) -> Link:
        return RelayLink(url, self._config.link)

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> RelayPool:
        """Create a pool from a YAML file (see [load_yaml()][nostrtv.core.yaml.load_yaml])."""
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], **kwargs: Any) -> RelayPool:
        """Create a pool from a dictionary matching ``RelayPoolConfig``."""
        return cls(RelayPoolConfig(**config_dict), **kwargs)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> RelayPoolConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Aggregate connection state across all links."""
        return self._state

    @property
    def relay_urls(self) -> list[str]:
        """URLs of every tracked link, open or not."""
        return list(self._links)

    @property
    def connected_relays(self) -> list[str]:
        """URLs of the links that are currently open."""
        return [url for url in self._links if url in self._open]

    @property
    def connected_count(self) -> int:
        return len(self._open)

    @property
    def last_error(self) -> str | None:
        """Reason given by the most recent link that went down, if any."""
        return self._last_error

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* on every aggregate state change.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, urls: Iterable[str] | None = None) -> int:
        """Open one link per URL and start merging their streams.

        URLs already tracked are skipped. Failed relays are logged and leave
        the aggregate state to the others; this method never raises for a
        relay that cannot be reached.

        Args:
            urls: Relay URLs; defaults to ``config.relays``.

        Returns:
            Number of links open when the call returns.
        """
        async with self._lock:
            targets = [
                url
                for url in dict.fromkeys(normalize_relay_url(u) for u in (urls or self._config.relays))
                if url not in self._links
            ]
            if not targets:
                return len(self._open)

            self._logger.info("pool_connecting", relays=len(targets))
            new_links: dict[str, Link] = {}
            for url in targets:
                link = self._link_factory(url)
                new_links[url] = link
                self._links[url] = link
                self._pumps[url] = asyncio.create_task(self._pump(url, link), name=f"pool-pump:{url}")

            self._connecting += 1
            self._update_state()
            try:
                results = await asyncio.gather(
                    *(link.connect() for link in new_links.values()), return_exceptions=True
                )
            finally:
                self._connecting -= 1

            for (url, link), result in zip(new_links.items(), results, strict=True):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    self._logger.warning("relay_connect_error", url=url, error=str(result))
                elif result and link.is_connected:
                    self._mark_open(url)
            self._update_state()

            self._logger.info(
                "pool_connected",
                open=len(self._open),
                tracked=len(self._links),
                state=self._state,
            )
            return len(self._open)

    async def reconnect(self) -> int:
        """Reopen every tracked link that is not currently open.

        Returns:
            Number of links open when the call returns.
        """
        async with self._lock:
            closed = {url: link for url, link in self._links.items() if url not in self._open}
            if not closed:
                return len(self._open)
            self._connecting += 1
            self._update_state()
            try:
                results = await asyncio.gather(
                    *(link.connect() for link in closed.values()), return_exceptions=True
                )
            finally:
                self._connecting -= 1
            for (url, link), result in zip(closed.items(), results, strict=True):
                if result is True and link.is_connected:
                    self._mark_open(url)
            self._update_state()
            return len(self._open)

    async def disconnect(self) -> None:
        """Tear down every link and reset the state to ``DISCONNECTED``.

        Idempotent. Ends the current [messages()][nostrtv.core.pool.RelayPool.messages]
        iteration.
        """
        async with self._lock:
            pumps = list(self._pumps.values())
            links = list(self._links.values())
            self._pumps.clear()
            self._links.clear()

            for task in pumps:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            await asyncio.gather(*(link.disconnect() for link in links), return_exceptions=True)

            for url in list(self._open):
                self._mark_closed(url)
            self._update_state()

            self._inbox.put_nowait(None)
            self._inbox = asyncio.Queue()
            if links:
                self._logger.info("pool_disconnected", relays=len(links))

    async def wait_connected(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Wait until at least one link is open.

        Returns:
            True if connected within *timeout* seconds, False otherwise.
        """
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def broadcast(self, text: str) -> int:
        """Send *text* to every open link.

        Returns:
            Number of links that accepted the write.
        """
        targets = [self._links[url] for url in self.connected_relays]
        if not targets:
            self._logger.debug("broadcast_skipped", reason="no_open_relays")
            return 0
        results = await asyncio.gather(*(link.send(text) for link in targets))
        accepted = sum(1 for ok in results if ok)
        self._logger.debug("broadcast_sent", accepted=accepted, targets=len(targets))
        return accepted

    async def send_to(self, url: str, text: str) -> bool:
        """Send *text* to a single tracked relay."""
        link = self._links.get(normalize_relay_url(url))
        if link is None:
            return False
        return await link.send(text)

    async def publish(self, event: ProtocolEvent) -> int:
        """Broadcast ``["EVENT", event]``; returns the number of accepting links."""
        accepted = await self.broadcast(event_message(event))
        self._logger.info("event_published", id=event.id[:16], kind=event.kind, relays=accepted)
        return accepted

    async def subscribe(self, subscription_id: str, *filters: Filter) -> int:
        """Broadcast ``["REQ", subscription_id, filters...]``."""
        return await self.broadcast(req_message(subscription_id, *filters))

    async def close_subscription(self, subscription_id: str) -> int:
        """Broadcast ``["CLOSE", subscription_id]``."""
        return await self.broadcast(close_message(subscription_id))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def messages(self) -> AsyncIterator[RelayEnvelope]:
        """Yield parsed relay messages from all links until ``disconnect()``."""
        inbox = self._inbox
        while True:
            envelope = await inbox.get()
            if envelope is None:
                return
            yield envelope

    async def _pump(self, url: str, link: Link) -> None:
        async for event in link.events():
            match event:
                case LinkMessage(text=text):
                    self._handle_frame(url, text)
                case LinkConnected():
                    if link.is_connected:
                        self._mark_open(url)
                        self._update_state()
                case LinkDisconnected(reason=reason):
                    self._last_error = reason
                    if url in self._open:
                        self._logger.warning("relay_disconnected", url=url, reason=reason)
                    self._mark_closed(url)
                    self._update_state()
                case LinkError(description=description):
                    self._logger.debug("relay_error", url=url, error=description)

    def _handle_frame(self, url: str, text: str) -> None:
        try:
            message = parse_relay_message(text)
        except ProtocolParseError as e:
            RELAY_MESSAGES_TOTAL.labels(type="invalid").inc()
            self._logger.debug("relay_message_dropped", url=url, error=str(e), frame=text[:200])
            return
        RELAY_MESSAGES_TOTAL.labels(type=type(message).__name__).inc()
        if isinstance(message, NoticeMessage):
            self._logger.info("relay_notice", url=url, notice=message.message)
        self._inbox.put_nowait(RelayEnvelope(url, message))

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def _mark_open(self, url: str) -> None:
        if url not in self._open:
            self._open.add(url)
            RELAY_LINKS_OPEN.inc()

    def _mark_closed(self, url: str) -> None:
        if url in self._open:
            self._open.discard(url)
            RELAY_LINKS_OPEN.dec()

    def _update_state(self) -> None:
        if self._open:
            new_state = ConnectionState.CONNECTED
        elif self._connecting:
            new_state = ConnectionState.CONNECTING
        else:
            new_state = ConnectionState.DISCONNECTED

        if new_state == ConnectionState.CONNECTED:
            self._connected_event.set()
        else:
            self._connected_event.clear()

        if new_state == self._state:
            return
        self._state = new_state
        self._logger.debug("pool_state_changed", state=new_state, open=len(self._open))
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:  # noqa: BLE001
                self._logger.error("state_listener_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> RelayPool:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.disconnect()

    def __repr__(self) -> str:
        return f"RelayPool(relays={len(self._links)}, open={len(self._open)}, state={self._state})"
