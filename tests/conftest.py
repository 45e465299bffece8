"""
Pytest configuration and shared fixtures for nostrtv tests.

Provides:
- FakeLink / FakeLinkFactory: scripted relay links for the pool and signer
- FakeBunker: a remote signer answering NIP-46 requests over a FakeLink
- RelayStore: a relay answering subscriptions from a list of stored events
- Key pair and clock fixtures
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable

import pytest

from nostrtv.models.event import ProtocolEvent, UnsignedEvent
from nostrtv.models.keys import KeyPair
from nostrtv.nips import nip44
from nostrtv.nips.nip01 import finalize_event
from nostrtv.nips.nip46 import NIP46_KIND
from nostrtv.utils.transport import (
    LinkConnected,
    LinkDisconnected,
    LinkError,
    LinkEvent,
    LinkMessage,
)


# Deterministic secp256k1 test keys (DO NOT USE IN PRODUCTION)
ALICE_SECRET = "0000000000000000000000000000000000000000000000000000000000000001"  # pragma: allowlist secret
BOB_SECRET = "0000000000000000000000000000000000000000000000000000000000000002"  # pragma: allowlist secret
USER_SECRET = "7f7ff03d123792d6ac594bfa67bf6d0c0ab55b6b1fdb6249303fe861f1ccba9a"  # pragma: allowlist secret

NOW = 1_700_000_000


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Keys and Clock
# ============================================================================


@pytest.fixture
def alice() -> KeyPair:
    return KeyPair.from_private_key(ALICE_SECRET)


@pytest.fixture
def bob() -> KeyPair:
    return KeyPair.from_private_key(BOB_SECRET)


@pytest.fixture
def user_keys() -> KeyPair:
    return KeyPair.from_private_key(USER_SECRET)


class FakeClock:
    """Settable Unix clock."""

    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_event(
    keys: KeyPair,
    *,
    kind: int = 1,
    content: str = "hello",
    tags: list[list[str]] | None = None,
    created_at: int = NOW,
) -> ProtocolEvent:
    """Build a signed event."""
    return finalize_event(
        UnsignedEvent(kind=kind, content=content, tags=tags or [], created_at=created_at), keys
    )


# ============================================================================
# Fake relay links
# ============================================================================


class FakeLink:
    """In-memory relay link driven by the test.

    Frames written with ``send()`` are recorded in ``sent`` and passed to
    ``on_send``; the test injects inbound frames with ``feed()``.
    """

    def __init__(self, url: str, *, connect_result: bool = True) -> None:
        self.url = url
        self.connect_result = connect_result
        self.sent: list[str] = []
        self.connect_calls = 0
        self.on_send: Callable[[str], None] | None = None
        self._connected = False
        self._finished = False
        self._queue: asyncio.Queue[LinkEvent | None] = asyncio.Queue()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_finished(self) -> bool:
        return self._finished

    async def connect(self) -> bool:
        self.connect_calls += 1
        if self._finished:
            return False
        if not self.connect_result:
            self._queue.put_nowait(LinkError("connection refused"))
            self._queue.put_nowait(LinkDisconnected("connection refused"))
            return False
        self._connected = True
        self._queue.put_nowait(LinkConnected())
        return True

    async def send(self, text: str) -> bool:
        if not self._connected:
            return False
        self.sent.append(text)
        if self.on_send is not None:
            self.on_send(text)
        return True

    def feed(self, frame: str | list) -> None:
        text = frame if isinstance(frame, str) else json.dumps(frame)
        self._queue.put_nowait(LinkMessage(text))

    def drop(self, reason: str = "closed by relay") -> None:
        self._connected = False
        self._queue.put_nowait(LinkDisconnected(reason))

    def sent_frames(self) -> list[list]:
        return [json.loads(text) for text in self.sent]

    async def events(self) -> AsyncIterator[LinkEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                self._queue.put_nowait(None)
                return
            yield event

    async def disconnect(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._connected = False
        self._queue.put_nowait(None)


class FakeLinkFactory:
    """Creates (and remembers) one FakeLink per URL."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.links: dict[str, FakeLink] = {}
        self.on_create: Callable[[FakeLink], None] | None = None

    def __call__(self, url: str) -> FakeLink:
        link = FakeLink(url, connect_result=url not in self.failing)
        self.links[url] = link
        if self.on_create is not None:
            self.on_create(link)
        return link

    def __getitem__(self, url: str) -> FakeLink:
        return self.links[url]


@pytest.fixture
def link_factory() -> FakeLinkFactory:
    return FakeLinkFactory()


async def settle(rounds: int = 10) -> None:
    """Let queued tasks (pumps, readers) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================================================
# Fake relay with stored events
# ============================================================================


def _matches(event: ProtocolEvent, query: dict) -> bool:
    if "kinds" in query and event.kind not in query["kinds"]:
        return False
    if "authors" in query and event.pubkey not in query["authors"]:
        return False
    for key, values in query.items():
        if key.startswith("#") and not set(event.tag_values(key[1:])) & set(values):
            return False
    return True


class RelayStore:
    """Answers REQ frames on attached FakeLinks with matching events, then EOSE.

    Attach it through ``link_factory.on_create``; every REQ is recorded in
    ``requests``.
    """

    def __init__(self, events: list[ProtocolEvent] | None = None) -> None:
        self.events = list(events or [])
        self.requests: list[list] = []

    def attach(self, link: FakeLink) -> None:
        link.on_send = lambda text: self._on_send(link, text)

    def _on_send(self, link: FakeLink, text: str) -> None:
        frame = json.loads(text)
        if frame[0] != "REQ":
            return
        self.requests.append(frame)
        sub_id, queries = frame[1], frame[2:]
        for event in self.events:
            if any(_matches(event, query) for query in queries):
                link.feed(["EVENT", sub_id, event.to_dict()])
        link.feed(["EOSE", sub_id])


# ============================================================================
# Fake remote signer
# ============================================================================


class FakeBunker:
    """Remote signer answering NIP-46 requests sent over a FakeLink.

    Attach it to a link with ``attach()``; it tracks the client's
    subscription id and replies to ``get_public_key`` and ``sign_event``.
    """

    def __init__(self, bunker_keys: KeyPair, user_keys: KeyPair, clock: FakeClock) -> None:
        self.keys = bunker_keys
        self.user_keys = user_keys
        self.clock = clock
        self.link: FakeLink | None = None
        self.subscription_id: str | None = None
        self.requests: list[dict] = []
        self.respond = True
        self.response_created_at: int | None = None
        self.error: str | None = None
        self.tamper_signature = False

    def attach(self, link: FakeLink) -> None:
        self.link = link
        link.on_send = self._on_send

    @property
    def pubkey(self) -> str:
        return self.keys.public_key_hex

    def send_response(
        self,
        client_pubkey: str,
        body: dict,
        *,
        created_at: int | None = None,
        keys: KeyPair | None = None,
    ) -> ProtocolEvent:
        keys = keys or self.keys
        content = nip44.encrypt(json.dumps(body), keys.private_key, bytes.fromhex(client_pubkey))
        event = make_event(
            keys,
            kind=NIP46_KIND,
            content=content,
            tags=[["p", client_pubkey]],
            created_at=self.clock() if created_at is None else created_at,
        )
        assert self.link is not None
        self.link.feed(["EVENT", self.subscription_id, event.to_dict()])
        return event

    def ack(self, client_pubkey: str, result: str = "ack", **kwargs) -> ProtocolEvent:
        return self.send_response(client_pubkey, {"id": "connect-1", "result": result}, **kwargs)

    def _on_send(self, text: str) -> None:
        frame = json.loads(text)
        if frame[0] == "REQ":
            self.subscription_id = frame[1]
            return
        if frame[0] != "EVENT":
            return
        event = ProtocolEvent.from_dict(frame[1])
        request = json.loads(
            nip44.decrypt(event.content, self.keys.private_key, bytes.fromhex(event.pubkey))
        )
        self.requests.append(request)
        if not self.respond:
            return
        body: dict = {"id": request["id"]}
        if self.error:
            body["error"] = self.error
        elif request["method"] == "get_public_key":
            body["result"] = self.user_keys.public_key_hex
        elif request["method"] == "sign_event":
            unsigned = UnsignedEvent.from_json(request["params"][0])
            signed = finalize_event(unsigned, self.user_keys)
            if self.tamper_signature:
                payload = signed.to_dict()
                payload["sig"] = ("0" if payload["sig"][0] != "0" else "1") + payload["sig"][1:]
                body["result"] = json.dumps(payload)
            else:
                body["result"] = signed.to_json()
        else:
            body["result"] = "pong"
        self.send_response(event.pubkey, body, created_at=self.response_created_at)
