"""
Unit tests for services.signer.session module.

Runs RemoteSignerSession end to end against FakeBunker over a FakeLink,
with a FakeClock driving the staleness rules.

Tests:
- start_login(): URI, subscription filter, unreachable relay
- Handshake: ack (or secret) -> Connecting -> Authenticated, persistence
- Staleness: events before the session window, responses before the request
- call_method(): error responses, timeouts, relay rejections
- sign_event(): verification of the returned event
- Relay drops during login and reconnect()
- restore_session(), logout(), cancel_login()
"""

import asyncio
import json

import pytest
import pytest_asyncio

from nostrtv.core.exceptions import (
    ConnectivityError,
    InvalidSignatureError,
    NotAuthenticatedError,
    SignerCancelledError,
    SignerError,
    SignerRequestError,
    SignerTimeoutError,
)
from nostrtv.models.auth import (
    AuthError,
    Authenticated,
    Connecting,
    NotAuthenticated,
    WaitingForScan,
)
from nostrtv.models.event import ProtocolEvent, UnsignedEvent
from nostrtv.models.keys import KeyPair
from nostrtv.models.session import SavedSession
from nostrtv.nips import nip04
from nostrtv.nips.nip01 import verify_event
from nostrtv.nips.nip46 import NIP46_KIND, parse_connection_uri
from nostrtv.services.configs import SignerConfig
from nostrtv.services.session_store import MemorySessionStore
from nostrtv.services.signer import CLOCK_REJECTION_MESSAGE, RemoteSignerSession
from nostrtv.utils.keys import generate_keypair
from tests.conftest import (
    ALICE_SECRET,
    NOW,
    FakeBunker,
    FakeLinkFactory,
    make_event,
    settle,
)


RELAY = "wss://signer.example"
A_TAG = f"30311:{'c' * 64}:stream-1"


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def config() -> SignerConfig:
    return SignerConfig(relay=RELAY, request_timeout=2, relay_ready_timeout=0.2)


@pytest.fixture
def bunker(bob, user_keys, clock) -> FakeBunker:
    return FakeBunker(bob, user_keys, clock)


@pytest_asyncio.fixture
async def signer(store, config, link_factory, bunker, clock):
    link_factory.on_create = bunker.attach
    session = RemoteSignerSession(store, config, link_factory=link_factory, clock=clock)
    yield session
    await session.close()


async def login(signer: RemoteSignerSession, bunker: FakeBunker) -> str:
    await signer.start_login()
    bunker.ack(signer.session.client_pubkey)
    return await signer.wait_until_authenticated(timeout=2)


def saved_session(bunker: FakeBunker) -> SavedSession:
    return SavedSession(
        user_pubkey=bunker.user_keys.public_key_hex,
        bunker_pubkey=bunker.pubkey,
        client_private_key=ALICE_SECRET,
        relay_url=RELAY,
        secret="s3cret",
    )


# ============================================================================
# start_login()
# ============================================================================


class TestStartLogin:
    @pytest.mark.asyncio
    async def test_returns_connection_uri(self, signer) -> None:
        uri = await signer.start_login()

        parsed = parse_connection_uri(uri)
        assert parsed.scheme == "nostrconnect"
        assert parsed.pubkey == signer.session.client_pubkey
        assert parsed.relays == (RELAY,)
        assert parsed.secret == signer.session.secret
        assert parsed.name == "nostrTV"
        assert signer.state == WaitingForScan(uri)
        assert signer.connection_uri == uri
        assert signer.is_relay_ready

    @pytest.mark.asyncio
    async def test_subscribes_to_client_pubkey(self, signer, link_factory, bunker) -> None:
        await signer.start_login()

        assert link_factory[RELAY].sent_frames() == [
            [
                "REQ",
                bunker.subscription_id,
                {
                    "kinds": [NIP46_KIND],
                    "#p": [signer.session.client_pubkey],
                    "since": NOW - 5,
                },
            ]
        ]

    @pytest.mark.asyncio
    async def test_fresh_keys_per_login(self, signer) -> None:
        await signer.start_login()
        first = signer.session.client_pubkey
        await signer.start_login()
        assert signer.session.client_pubkey != first

    @pytest.mark.asyncio
    async def test_unreachable_relay(self, config, clock) -> None:
        signer = RemoteSignerSession(
            config=config, link_factory=FakeLinkFactory(failing={RELAY}), clock=clock
        )
        with pytest.raises(ConnectivityError):
            await signer.start_login()
        assert signer.state == AuthError(f"Cannot reach relay {RELAY}")
        await signer.close()

    @pytest.mark.asyncio
    async def test_unreachable_relay_is_torn_down(self, config, clock) -> None:
        factory = FakeLinkFactory(failing={RELAY})
        signer = RemoteSignerSession(config=config, link_factory=factory, clock=clock)
        with pytest.raises(ConnectivityError):
            await signer.start_login()

        assert factory[RELAY].is_finished
        assert not signer.is_relay_ready
        assert [t for t in asyncio.all_tasks() if t.get_name() == "signer-reader"] == []

    @pytest.mark.asyncio
    async def test_wait_times_out_without_scan(self, signer) -> None:
        await signer.start_login()
        with pytest.raises(SignerTimeoutError):
            await signer.wait_until_authenticated(timeout=0.05)


# ============================================================================
# Handshake
# ============================================================================


class TestHandshake:
    @pytest.mark.asyncio
    async def test_ack_completes_login(self, signer, store, bunker, user_keys) -> None:
        pubkey = await login(signer, bunker)

        assert pubkey == user_keys.public_key_hex
        assert signer.state == Authenticated(pubkey)
        assert signer.is_authenticated()
        assert signer.get_user_pubkey() == pubkey
        assert signer.connection_uri is None
        assert [r["method"] for r in bunker.requests] == ["get_public_key"]

        saved = store.load()
        assert saved is not None
        assert saved.user_pubkey == pubkey
        assert saved.bunker_pubkey == bunker.pubkey
        assert saved.client_private_key == signer.session.client_keys.private_key_hex
        assert saved.relay_url == RELAY
        assert saved.secret == signer.session.secret

    @pytest.mark.asyncio
    async def test_state_sequence(self, signer, bunker) -> None:
        states = []
        signer.add_state_listener(states.append)
        await login(signer, bunker)

        assert [type(s) for s in states] == [WaitingForScan, Connecting, Authenticated]

    @pytest.mark.asyncio
    async def test_secret_counts_as_ack(self, signer, bunker, user_keys) -> None:
        await signer.start_login()
        bunker.ack(signer.session.client_pubkey, result=signer.session.secret)
        assert await signer.wait_until_authenticated(timeout=2) == user_keys.public_key_hex

    @pytest.mark.asyncio
    async def test_other_result_is_not_ack(self, signer, bunker) -> None:
        await signer.start_login()
        bunker.ack(signer.session.client_pubkey, result="not-the-secret")
        await settle()
        assert isinstance(signer.state, WaitingForScan)

    @pytest.mark.asyncio
    async def test_nip04_ack_accepted(self, signer, link_factory, bunker, bob) -> None:
        await signer.start_login()
        client = signer.session.client_pubkey
        content = nip04.encrypt(
            json.dumps({"id": "connect-1", "result": "ack"}),
            bob.private_key,
            bytes.fromhex(client),
        )
        event = make_event(bob, kind=NIP46_KIND, content=content, tags=[["p", client]])
        link_factory[RELAY].feed(["EVENT", bunker.subscription_id, event.to_dict()])

        await signer.wait_until_authenticated(timeout=2)

    @pytest.mark.asyncio
    async def test_ack_for_other_client_ignored(self, signer, bunker, alice) -> None:
        await signer.start_login()
        bunker.ack(alice.public_key_hex)
        await settle()
        assert isinstance(signer.state, WaitingForScan)

    @pytest.mark.asyncio
    async def test_handshake_failure(self, signer, store, bunker) -> None:
        bunker.error = "user denied"
        await signer.start_login()
        bunker.ack(signer.session.client_pubkey)

        with pytest.raises(SignerError, match="Failed to get public key"):
            await signer.wait_until_authenticated(timeout=2)
        assert isinstance(signer.state, AuthError)
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_rejected_listener_does_not_break_login(self, signer, bunker) -> None:
        def broken(_state) -> None:
            raise RuntimeError("listener bug")

        signer.add_state_listener(broken)
        await login(signer, bunker)
        assert signer.is_authenticated()

    @pytest.mark.asyncio
    async def test_remove_listener(self, signer, bunker) -> None:
        states = []
        remove = signer.add_state_listener(states.append)
        remove()
        remove()
        await login(signer, bunker)
        assert states == []


# ============================================================================
# Staleness
# ============================================================================


class TestStaleness:
    @pytest.mark.asyncio
    async def test_event_before_session_window_dropped(self, signer, bunker) -> None:
        await signer.start_login()
        bunker.ack(signer.session.client_pubkey, created_at=NOW - 6)
        await settle()
        assert isinstance(signer.state, WaitingForScan)

    @pytest.mark.asyncio
    async def test_event_at_window_edge_accepted(self, signer, bunker) -> None:
        await signer.start_login()
        bunker.ack(signer.session.client_pubkey, created_at=NOW - 5)
        await signer.wait_until_authenticated(timeout=2)

    @pytest.mark.asyncio
    async def test_response_older_than_request_ignored(self, signer, bunker, clock) -> None:
        await login(signer, bunker)
        clock.advance(100)
        bunker.response_created_at = NOW

        with pytest.raises(SignerTimeoutError):
            await signer.call_method("ping", timeout=0.2)
        assert signer.pending_count == 0

    @pytest.mark.asyncio
    async def test_response_within_buffer_accepted(self, signer, bunker, clock) -> None:
        await login(signer, bunker)
        clock.advance(100)
        bunker.response_created_at = clock.now - 5

        response = await signer.call_method("ping")
        assert response.result == "pong"


# ============================================================================
# call_method()
# ============================================================================


class TestCallMethod:
    @pytest.mark.asyncio
    async def test_round_trip(self, signer, bunker) -> None:
        await login(signer, bunker)

        response = await signer.call_method("ping", ["a", "b"])
        assert response.result == "pong"
        assert bunker.requests[-1]["method"] == "ping"
        assert bunker.requests[-1]["params"] == ["a", "b"]
        assert response.id == bunker.requests[-1]["id"]
        assert signer.pending_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_requests_resolve_independently(self, signer, bunker) -> None:
        await login(signer, bunker)

        responses = await asyncio.gather(*(signer.call_method("ping") for _ in range(5)))
        assert len({r.id for r in responses}) == 5

    @pytest.mark.asyncio
    async def test_error_response(self, signer, bunker) -> None:
        await login(signer, bunker)
        bunker.error = "permission denied"

        with pytest.raises(SignerRequestError) as exc_info:
            await signer.call_method("ping")
        assert exc_info.value.method == "ping"
        assert exc_info.value.message == "permission denied"

    @pytest.mark.asyncio
    async def test_timeout(self, signer, bunker) -> None:
        await login(signer, bunker)
        bunker.respond = False

        with pytest.raises(SignerTimeoutError):
            await signer.call_method("ping", timeout=0.05)
        assert signer.pending_count == 0

    @pytest.mark.asyncio
    async def test_requires_paired_signer(self, signer) -> None:
        with pytest.raises(NotAuthenticatedError):
            await signer.call_method("ping")

    @pytest.mark.asyncio
    async def test_get_public_key(self, signer, bunker, user_keys) -> None:
        await login(signer, bunker)
        assert await signer.get_public_key() == user_keys.public_key_hex

    @pytest.mark.asyncio
    async def test_close_cancels_pending(self, signer, bunker) -> None:
        await login(signer, bunker)
        bunker.respond = False

        call = asyncio.create_task(signer.call_method("ping"))
        await settle()
        assert signer.pending_count == 1
        await signer.close()

        with pytest.raises(SignerCancelledError):
            await call
        assert signer.pending_count == 0


class TestRelayRejection:
    def reject_writes(self, link, message: str) -> None:
        def on_send(text: str) -> None:
            frame = json.loads(text)
            if frame[0] == "EVENT":
                link.feed(["OK", frame[1]["id"], False, message])

        link.on_send = on_send

    @pytest.mark.asyncio
    async def test_clock_rejection(self, signer, link_factory, bunker) -> None:
        await login(signer, bunker)
        self.reject_writes(link_factory[RELAY], "invalid: created_at too old")

        with pytest.raises(SignerError, match="relay rejected request"):
            await signer.call_method("ping")
        await settle()
        assert signer.state == AuthError(CLOCK_REJECTION_MESSAGE)

    @pytest.mark.asyncio
    async def test_other_rejection_keeps_state(self, signer, link_factory, bunker) -> None:
        await login(signer, bunker)
        self.reject_writes(link_factory[RELAY], "blocked: spam")

        with pytest.raises(SignerError, match="blocked: spam"):
            await signer.call_method("ping")
        assert signer.is_authenticated()


# ============================================================================
# sign_event()
# ============================================================================


class TestSignEvent:
    def unsigned_json(self) -> str:
        return UnsignedEvent(
            kind=1311, content="great stream", tags=[["a", A_TAG]], created_at=NOW
        ).to_json()

    @pytest.mark.asyncio
    async def test_returns_verified_event(self, signer, bunker, user_keys) -> None:
        await login(signer, bunker)

        signed = ProtocolEvent.from_json(await signer.sign_event(self.unsigned_json()))
        assert signed.pubkey == user_keys.public_key_hex
        assert signed.kind == 1311
        assert signed.content == "great stream"
        assert signed.tags == (("a", A_TAG),)
        assert verify_event(signed)

    @pytest.mark.asyncio
    async def test_tampered_signature(self, signer, bunker) -> None:
        await login(signer, bunker)
        bunker.tamper_signature = True

        with pytest.raises(InvalidSignatureError):
            await signer.sign_event(self.unsigned_json())

    @pytest.mark.asyncio
    async def test_signed_by_other_key(self, signer, bunker) -> None:
        await login(signer, bunker)
        bunker.user_keys = generate_keypair()

        with pytest.raises(InvalidSignatureError, match="unexpected key"):
            await signer.sign_event(self.unsigned_json())

    @pytest.mark.asyncio
    async def test_requires_authentication(self, signer) -> None:
        with pytest.raises(NotAuthenticatedError):
            await signer.sign_event(self.unsigned_json())

    @pytest.mark.asyncio
    async def test_rejects_malformed_template(self, signer, bunker) -> None:
        await login(signer, bunker)
        with pytest.raises(ValueError):
            await signer.sign_event('{"content": "no kind"}')

    @pytest.mark.asyncio
    async def test_relay_not_ready(self, signer, link_factory, bunker) -> None:
        await login(signer, bunker)
        link_factory[RELAY].drop()
        await settle()

        assert not signer.is_relay_ready
        with pytest.raises(ConnectivityError):
            await signer.sign_event(self.unsigned_json())


# ============================================================================
# Relay drops and reconnect()
# ============================================================================


class TestRelayDrop:
    @pytest.mark.asyncio
    async def test_drop_during_login_fails_login(self, signer, link_factory) -> None:
        await signer.start_login()
        link_factory[RELAY].drop("relay went away")
        await settle()

        assert signer.state == AuthError("Connection failed: relay went away")
        assert not signer.is_relay_ready
        with pytest.raises(SignerError, match="relay went away"):
            await signer.wait_until_authenticated(timeout=1)

    @pytest.mark.asyncio
    async def test_drop_after_login_keeps_session(self, signer, link_factory, bunker) -> None:
        pubkey = await login(signer, bunker)
        link_factory[RELAY].drop("relay went away")
        await settle()

        assert signer.state == Authenticated(pubkey)
        assert not signer.is_relay_ready

    @pytest.mark.asyncio
    async def test_reconnect_resubscribes_with_same_since(
        self, signer, link_factory, bunker
    ) -> None:
        uri = await signer.start_login()
        link = link_factory[RELAY]
        link.drop("relay went away")
        await settle()

        assert await signer.reconnect() is True
        requests = [frame for frame in link.sent_frames() if frame[0] == "REQ"]
        assert len(requests) == 2
        assert requests[1] == requests[0]
        assert requests[1][2]["since"] == NOW - 5
        assert link.connect_calls == 2
        assert signer.is_relay_ready
        assert signer.state == WaitingForScan(uri)

        bunker.ack(signer.session.client_pubkey)
        assert await signer.wait_until_authenticated(timeout=2) == bunker.user_keys.public_key_hex

    @pytest.mark.asyncio
    async def test_reconnect_restores_signing(self, signer, link_factory, bunker) -> None:
        await login(signer, bunker)
        link_factory[RELAY].drop()
        await settle()

        assert await signer.reconnect() is True
        unsigned = UnsignedEvent(kind=1311, content="back", tags=[["a", A_TAG]], created_at=NOW)
        signed = ProtocolEvent.from_json(await signer.sign_event(unsigned.to_json()))
        assert verify_event(signed)

    @pytest.mark.asyncio
    async def test_reconnect_while_connected_only_resubscribes(
        self, signer, link_factory
    ) -> None:
        await signer.start_login()
        assert await signer.reconnect() is True
        assert link_factory[RELAY].connect_calls == 1

    @pytest.mark.asyncio
    async def test_reconnect_without_session(self, signer) -> None:
        assert await signer.reconnect() is False

    @pytest.mark.asyncio
    async def test_reconnect_fails_while_relay_down(self, signer, link_factory) -> None:
        await signer.start_login()
        link = link_factory[RELAY]
        link.drop("relay went away")
        await settle()
        link.connect_result = False

        assert await signer.reconnect() is False
        assert isinstance(signer.state, AuthError)
        assert not signer.is_relay_ready


# ============================================================================
# Session lifecycle
# ============================================================================


class TestRestoreSession:
    @pytest.mark.asyncio
    async def test_nothing_to_restore(self, signer) -> None:
        assert await signer.restore_session() is False
        assert signer.state == NotAuthenticated()

    @pytest.mark.asyncio
    async def test_restores_from_store(self, signer, store, bunker, user_keys) -> None:
        store.save(saved_session(bunker))

        assert await signer.restore_session() is True
        assert signer.state == Authenticated(user_keys.public_key_hex)
        assert signer.session.client_keys == KeyPair.from_private_key(ALICE_SECRET)
        assert await signer.get_public_key() == user_keys.public_key_hex

    @pytest.mark.asyncio
    async def test_restore_signs_events(self, signer, bunker) -> None:
        await signer.restore_session(saved_session(bunker))
        unsigned = UnsignedEvent(kind=1, content="hi", created_at=NOW).to_json()
        assert verify_event(ProtocolEvent.from_json(await signer.sign_event(unsigned)))

    @pytest.mark.asyncio
    async def test_ack_from_new_bunker_key_is_saved(self, signer, store, bunker) -> None:
        await signer.restore_session(saved_session(bunker))
        new_bunker = generate_keypair()

        bunker.ack(signer.session.client_pubkey, keys=new_bunker)
        await settle()

        assert signer.is_authenticated()
        assert signer.session.bunker_pubkey == new_bunker.public_key_hex
        assert store.load().bunker_pubkey == new_bunker.public_key_hex


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_everything(self, signer, store, link_factory, bunker) -> None:
        await login(signer, bunker)
        await signer.logout()

        assert signer.state == NotAuthenticated()
        assert signer.session is None
        assert store.load() is None
        assert not link_factory[RELAY].is_connected
        assert not signer.is_relay_ready

    @pytest.mark.asyncio
    async def test_cancel_login(self, signer, store, bunker) -> None:
        store.save(saved_session(bunker))
        await signer.start_login()
        waiter = asyncio.create_task(signer.wait_until_authenticated(timeout=2))
        await settle()

        await signer.cancel_login()

        with pytest.raises(SignerCancelledError):
            await waiter
        assert signer.state == NotAuthenticated()
        assert signer.connection_uri is None
        assert store.load() is not None

    @pytest.mark.asyncio
    async def test_async_context_manager(self, config, link_factory, bunker, clock) -> None:
        link_factory.on_create = bunker.attach
        async with RemoteSignerSession(
            config=config, link_factory=link_factory, clock=clock
        ) as signer:
            await signer.start_login()
        assert not link_factory[RELAY].is_connected
