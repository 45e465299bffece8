"""
Remote signer (NIP-46) session.

The user's private key never leaves the signer app ("bunker"). The client
generates an ephemeral key pair, shows a ``nostrconnect://`` URI (usually
as a QR code) and then talks to the signer through a relay with NIP-44
encrypted kind 24133 events.

```text
NotAuthenticated --start_login()--> WaitingForScan(uri)
WaitingForScan   --ack-----------> Connecting --get_public_key--> Authenticated(pubkey)
any state        --failure-------> AuthError(message)
Authenticated    --logout()------> NotAuthenticated
```

Cached events from earlier sessions are replayed by relays. Two staleness
rules keep them out:

* an event older than ``session_started_at - clock_drift_buffer`` is
  dropped before it is decrypted;
* a response older than ``issued_at - clock_drift_buffer`` of the request it
  answers is dropped and the request stays pending.

See Also:
    [PendingRequests][nostrtv.services.signer.pending.PendingRequests]:
        Request table correlating responses to callers.
    [nostrtv.nips.nip46][nostrtv.nips.nip46]: URI and JSON-RPC payloads.
    [SessionStore][nostrtv.services.session_store.SessionStore]: Where an
        established session is persisted.

Examples:
    ```python
    signer = RemoteSignerSession(FileSessionStore("session.json"))
    if not await signer.restore_session():
        uri = await signer.start_login()
        show_qr(uri)
        await signer.wait_until_authenticated(timeout=120)
    signed_json = await signer.sign_event(unsigned.to_json())
    ```
"""

from __future__ import annotations

import asyncio
import secrets
import time
import uuid
from collections.abc import Callable, Sequence

from nostrtv.core.exceptions import (
    ConnectivityError,
    CryptoError,
    InvalidSignatureError,
    NotAuthenticatedError,
    ProtocolParseError,
    SignerCancelledError,
    SignerError,
    SignerRequestError,
    SignerTimeoutError,
    StaleResponseError,
)
from nostrtv.core.logger import Logger, short_hex
from nostrtv.core.metrics import SIGNER_REQUEST_SECONDS, SIGNER_REQUESTS_TOTAL
from nostrtv.core.pool import RelayPool, RelayPoolConfig
from nostrtv.models._validation import is_hex
from nostrtv.models.auth import (
    AuthError,
    AuthState,
    Authenticated,
    Connecting,
    NotAuthenticated,
    WaitingForScan,
)
from nostrtv.models.constants import ConnectionState
from nostrtv.models.event import ProtocolEvent, UnsignedEvent
from nostrtv.models.filter import Filter
from nostrtv.models.keys import KeyPair
from nostrtv.models.relay import normalize_relay_url
from nostrtv.models.session import BunkerSession, SavedSession
from nostrtv.nips import nip04, nip44
from nostrtv.nips.messages import ClosedMessage, EoseMessage, EventMessage, OkMessage
from nostrtv.nips.nip01 import finalize_event, verify_event
from nostrtv.nips.nip46 import NIP46_KIND, Method, Nip46Request, Nip46Response, build_connection_uri
from nostrtv.services.configs import SignerConfig
from nostrtv.services.session_store import MemorySessionStore, SessionStore
from nostrtv.utils.keys import generate_keypair
from nostrtv.utils.transport import LinkFactory

from .pending import PendingRequests


Clock = Callable[[], int]
AuthStateListener = Callable[[AuthState], None]

CLOCK_REJECTION_MESSAGE = "Relay rejected: check device clock"
_CLOCK_HINTS = ("time", "timestamp", "created_at")


def _system_clock() -> int:
    return int(time.time())


class RemoteSignerSession:
    """Client side of a NIP-46 remote signer session.

    One instance is created at application start and handed to every
    component that needs signatures (see
    [EventSigner][nostrtv.services.publishers.EventSigner]).

    Args:
        store: Where an established session is saved; defaults to an
            in-memory store.
        config: Relay, timeouts and clock drift buffer.
        link_factory: Builds the relay link; defaults to
            [RelayLink][nostrtv.utils.transport.RelayLink].
        clock: Returns the current Unix time in seconds.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        config: SignerConfig | None = None,
        *,
        link_factory: LinkFactory | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store: SessionStore = store or MemorySessionStore()
        self._config = config or SignerConfig()
        self._link_factory = link_factory
        self._clock = clock or _system_clock
        self._state: AuthState = NotAuthenticated()
        self._state_changed = asyncio.Event()
        self._listeners: list[AuthStateListener] = []
        self._session: BunkerSession | None = None
        self._connection_uri: str | None = None
        self._pool: RelayPool | None = None
        self._reader: asyncio.Task[None] | None = None
        self._handshake: asyncio.Task[None] | None = None
        self._subscription_id: str | None = None
        self._subscription_ready = asyncio.Event()
        self._pending = PendingRequests()
        self._outbound: dict[str, str] = {}
        self._logger = Logger("signer")

    def __repr__(self) -> str:
        return f"RemoteSignerSession(state={self._state!r})"

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def config(self) -> SignerConfig:
        return self._config

    @property
    def session(self) -> BunkerSession | None:
        return self._session

    @property
    def connection_uri(self) -> str | None:
        """URI issued by the last ``start_login()``, if a login is in progress."""
        return self._connection_uri

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_relay_ready(self) -> bool:
        return self._subscription_ready.is_set()

    def is_authenticated(self) -> bool:
        return isinstance(self._state, Authenticated)

    def get_user_pubkey(self) -> str | None:
        match self._state:
            case Authenticated(pubkey=pubkey):
                return pubkey
            case _:
                return None

    def add_state_listener(self, listener: AuthStateListener) -> Callable[[], None]:
        """Call *listener* on every state change; returns a function removing it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    async def wait_for_state(
        self,
        predicate: Callable[[AuthState], bool],
        timeout: float,  # noqa: ASYNC109
    ) -> AuthState:
        """Wait until *predicate* holds for the current state.

        Raises:
            SignerTimeoutError: If it does not hold within *timeout* seconds.
        """

        async def _wait() -> AuthState:
            while not predicate(self._state):
                await self._state_changed.wait()
            return self._state

        try:
            return await asyncio.wait_for(_wait(), timeout=timeout)
        except TimeoutError:
            raise SignerTimeoutError(
                f"state still {type(self._state).__name__} after {timeout}s"
            ) from None

    async def wait_until_authenticated(self, timeout: float) -> str:  # noqa: ASYNC109
        """Wait for the login to finish and return the user pubkey.

        Raises:
            SignerTimeoutError: If the login does not finish in time.
            SignerError: If the login ends in ``AuthError`` or is cancelled.
        """
        state = await self.wait_for_state(
            lambda s: isinstance(s, Authenticated | AuthError | NotAuthenticated),
            timeout,
        )
        match state:
            case Authenticated(pubkey=pubkey):
                return pubkey
            case AuthError(message=message):
                raise SignerError(message)
            case _:
                raise SignerCancelledError("login cancelled")

    def _set_state(self, state: AuthState) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        self._logger.info(
            "signer_state_changed",
            previous=type(previous).__name__,
            state=type(state).__name__,
        )
        event, self._state_changed = self._state_changed, asyncio.Event()
        event.set()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:  # Intentionally broad: listener errors must not break the session
                self._logger.error("state_listener_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Login lifecycle
    # -------------------------------------------------------------------------

    async def start_login(self, relay: str | None = None) -> str:
        """Begin a new login and return the ``nostrconnect://`` URI.

        Any previous session or login attempt is torn down first; persisted
        data is not touched.

        Args:
            relay: Relay for the signer traffic; defaults to ``config.relay``.

        Raises:
            ConnectivityError: If the relay cannot be reached. The state is
                ``AuthError`` in that case.
        """
        await self._teardown(SignerCancelledError("login restarted"))
        relay_url = normalize_relay_url(relay or self._config.relay)

        keys = generate_keypair()
        session = BunkerSession(
            client_keys=keys,
            secret=secrets.token_hex(16),
            relay_url=relay_url,
            session_started_at=self._clock(),
        )
        self._session = session
        uri = build_connection_uri(
            keys.public_key_hex, relay_url, session.secret, self._config.app_name
        )
        self._connection_uri = uri
        self._set_state(WaitingForScan(uri))
        self._logger.info(
            "login_started", relay=relay_url, client=short_hex(keys.public_key_hex)
        )

        if not await self._open_relay(session):
            message = f"Cannot reach relay {relay_url}"
            await self._teardown(SignerCancelledError(message))
            self._set_state(AuthError(message))
            raise ConnectivityError(message)
        return uri

    async def restore_session(self, saved: SavedSession | None = None) -> bool:
        """Resume a persisted session without a new handshake.

        The state becomes ``Authenticated`` immediately; a later ack from the
        signer only refreshes the bunker pubkey. A relay that cannot be
        reached is logged; signing then fails until the next restore.

        Args:
            saved: Session to restore; defaults to ``store.load()``.

        Returns:
            False if there was nothing to restore.
        """
        saved = saved or self._store.load()
        if saved is None:
            return False
        await self._teardown(SignerCancelledError("session restored"))

        session = BunkerSession(
            client_keys=KeyPair.from_private_key(saved.client_private_key),
            secret=saved.secret,
            relay_url=saved.relay_url,
            session_started_at=self._clock(),
            bunker_pubkey=saved.bunker_pubkey,
            user_pubkey=saved.user_pubkey,
        )
        self._session = session
        self._connection_uri = None
        self._set_state(Authenticated(saved.user_pubkey))
        self._logger.info(
            "session_restored", relay=saved.relay_url, user=short_hex(saved.user_pubkey)
        )

        if not await self._open_relay(session):
            self._logger.warning("signer_relay_unreachable", relay=saved.relay_url)
        return True

    async def logout(self) -> None:
        """End the session, forget all key material and clear the store."""
        await self._teardown(SignerCancelledError("logged out"))
        self._session = None
        self._connection_uri = None
        self._store.clear()
        self._set_state(NotAuthenticated())
        self._logger.info("logged_out")

    async def cancel_login(self) -> None:
        """Abandon the login in progress; persisted data is kept."""
        await self._teardown(SignerCancelledError("login cancelled"))
        self._session = None
        self._connection_uri = None
        self._set_state(NotAuthenticated())

    async def close(self) -> None:
        """Close the relay link and fail outstanding requests; state is kept."""
        await self._teardown(SignerCancelledError("session closed"))

    async def __aenter__(self) -> RemoteSignerSession:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def call_method(
        self,
        method: Method | str,
        params: Sequence[str] = (),
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> Nip46Response:
        """Send one request to the signer and wait for its response.

        The request is registered before it is sent, so a fast response can
        never be missed.

        Args:
            method: NIP-46 method name.
            params: String parameters (structured values JSON encoded).
            timeout: Seconds to wait; defaults to ``config.request_timeout``.

        Raises:
            NotAuthenticatedError: If no signer is paired yet.
            ConnectivityError: If the relay did not accept the request.
            SignerTimeoutError: If no response arrived in time.
            SignerCancelledError: If the session was torn down meanwhile.
            SignerRequestError: If the signer answered with an error.
        """
        session = self._session
        if session is None or session.bunker_pubkey is None:
            raise NotAuthenticatedError("no signer paired with this session")
        pool = self._pool
        if pool is None or pool.connected_count == 0:
            raise ConnectivityError(f"signer relay {session.relay_url} is not connected")

        request = Nip46Request(method=str(method), params=tuple(params))
        timeout = timeout or self._config.request_timeout
        issued_at = self._clock()
        entry = self._pending.register(request.id, request.method, issued_at)
        started = time.monotonic()
        outcome = "error"
        event_id: str | None = None
        try:
            event = self._wrap_request(session, request, issued_at)
            event_id = event.id
            self._outbound[event_id] = request.id
            if not await pool.publish(event):
                raise ConnectivityError(f"signer relay {session.relay_url} rejected the write")
            self._logger.debug("signer_request_sent", method=request.method, id=request.id)
            try:
                response = await asyncio.wait_for(entry.future, timeout=timeout)
            except TimeoutError:
                outcome = "timeout"
                raise SignerTimeoutError(
                    f"{request.method} timed out after {timeout}s"
                ) from None
            except SignerCancelledError:
                outcome = "cancelled"
                raise
            if response.is_error:
                raise SignerRequestError(request.method, response.error or "")
            outcome = "ok"
            return response
        finally:
            self._pending.discard(request.id)
            if event_id is not None:
                self._outbound.pop(event_id, None)
            SIGNER_REQUESTS_TOTAL.labels(method=request.method, outcome=outcome).inc()
            SIGNER_REQUEST_SECONDS.labels(method=request.method).observe(
                time.monotonic() - started
            )

    def _wrap_request(
        self, session: BunkerSession, request: Nip46Request, created_at: int
    ) -> ProtocolEvent:
        bunker = session.bunker_pubkey or ""
        content = nip44.encrypt(
            request.to_json(), session.client_keys.private_key, bytes.fromhex(bunker)
        )
        unsigned = UnsignedEvent(
            kind=NIP46_KIND,
            content=content,
            tags=(("p", bunker),),
            created_at=created_at,
        )
        return finalize_event(unsigned, session.client_keys)

    async def get_public_key(self) -> str:
        """Ask the signer for the user pubkey.

        Raises:
            SignerError: If the answer is not a 64-char hex pubkey (or any
                error of [call_method()][nostrtv.services.signer.RemoteSignerSession.call_method]).
        """
        response = await self.call_method(Method.GET_PUBLIC_KEY)
        pubkey = (response.result or "").strip().lower()
        if not is_hex(pubkey, 64):
            raise SignerError("signer returned an invalid public key")
        return pubkey

    async def sign_event(self, unsigned_event_json: str) -> str:
        """Have the signer sign an event and return the signed event JSON.

        Args:
            unsigned_event_json: ``{kind, content, tags, created_at}`` as JSON.

        Returns:
            The signed event, re-serialized after its id and signature were
            verified.

        Raises:
            ValueError: If *unsigned_event_json* is not an unsigned event.
            NotAuthenticatedError: If the session is not authenticated.
            ConnectivityError: If the relay subscription did not become ready
                within ``config.relay_ready_timeout``.
            InvalidSignatureError: If the returned event does not verify or
                was signed by another key.
            SignerError: For any other request failure.
        """
        unsigned = UnsignedEvent.from_json(unsigned_event_json)
        user_pubkey = self.get_user_pubkey()
        if user_pubkey is None:
            raise NotAuthenticatedError("sign_event requires an authenticated session")
        if not await self._wait_relay_ready():
            raise ConnectivityError(
                f"signer relay not ready after {self._config.relay_ready_timeout}s"
            )

        response = await self.call_method(Method.SIGN_EVENT, (unsigned.to_json(),))
        try:
            signed = ProtocolEvent.from_json(response.result or "")
        except (TypeError, ValueError) as e:
            raise InvalidSignatureError(f"signer returned a malformed event: {e}") from None
        if signed.pubkey != user_pubkey:
            raise InvalidSignatureError("signer signed with an unexpected key")
        if signed.kind != unsigned.kind or signed.content != unsigned.content:
            raise InvalidSignatureError("signer altered the event")
        if not verify_event(signed):
            raise InvalidSignatureError("signed event does not verify")
        self._logger.debug("event_signed", kind=signed.kind, id=short_hex(signed.id))
        return signed.to_json()

    async def _wait_relay_ready(self) -> bool:
        try:
            await asyncio.wait_for(
                self._subscription_ready.wait(), timeout=self._config.relay_ready_timeout
            )
        except TimeoutError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Relay link
    # -------------------------------------------------------------------------

    async def reconnect(self) -> bool:
        """Reopen the signer relay after it dropped and resubscribe.

        The subscription keeps its id and ``since``, so responses sent while
        the link was down are replayed by the relay. A login that failed only
        because the link dropped goes back to ``WaitingForScan``.

        Returns:
            True if the relay is open and the subscription was sent again.
        """
        session, pool = self._session, self._pool
        if session is None or pool is None or self._subscription_id is None:
            return False
        if pool.connected_count == 0 and await pool.reconnect() == 0:
            self._logger.warning("signer_reconnect_failed", relay=session.relay_url)
            return False
        if not await self._subscribe(pool, session):
            return False
        if (
            isinstance(self._state, AuthError)
            and self._connection_uri is not None
            and session.bunker_pubkey is None
        ):
            self._set_state(WaitingForScan(self._connection_uri))
        self._logger.info("signer_relay_reconnected", relay=session.relay_url)
        return True

    async def _open_relay(self, session: BunkerSession) -> bool:
        pool = RelayPool(
            RelayPoolConfig(relays=[session.relay_url], link=self._config.link),
            link_factory=self._link_factory,
        )
        pool.add_state_listener(lambda state: self._on_pool_state(pool, state))
        self._pool = pool
        self._reader = asyncio.create_task(self._read_loop(pool), name="signer-reader")
        if not await pool.connect():
            return False
        self._subscription_id = f"nip46-{uuid.uuid4().hex[:8]}"
        return await self._subscribe(pool, session)

    async def _subscribe(self, pool: RelayPool, session: BunkerSession) -> bool:
        sub_id = self._subscription_id or ""
        since = max(0, session.session_started_at - self._config.clock_drift_buffer)
        request_filter = Filter(
            kinds=[NIP46_KIND],
            tag_filters={"p": [session.client_pubkey]},
            since=since,
        )
        if not await pool.subscribe(sub_id, request_filter):
            self._logger.warning("signer_subscribe_failed", relay=session.relay_url)
            return False
        self._subscription_ready.set()
        self._logger.debug("signer_subscribed", subscription=sub_id, since=since)
        return True

    def _on_pool_state(self, pool: RelayPool, state: ConnectionState) -> None:
        if pool is not self._pool or state == ConnectionState.CONNECTED:
            return
        if self._subscription_ready.is_set():
            self._subscription_ready.clear()
            self._logger.warning("signer_relay_lost", state=state)
        # only a link that was once subscribed counts as a drop
        if (
            state == ConnectionState.DISCONNECTED
            and self._subscription_id is not None
            and not isinstance(self._state, Authenticated | AuthError)
        ):
            self._set_state(AuthError(f"Connection failed: {pool.last_error or 'relay closed'}"))

    async def _teardown(self, error: SignerError) -> None:
        failed = self._pending.cancel_all(error)
        if failed:
            self._logger.info("pending_requests_cancelled", count=failed, reason=str(error))
        self._outbound.clear()
        self._subscription_ready.clear()
        self._subscription_id = None

        handshake, self._handshake = self._handshake, None
        reader, self._reader = self._reader, None
        pool, self._pool = self._pool, None
        tasks = [
            t
            for t in (handshake, reader)
            if t is not None and t is not asyncio.current_task() and not t.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if pool is not None:
            await pool.disconnect()

    async def _read_loop(self, pool: RelayPool) -> None:
        async for envelope in pool.messages():
            match envelope.message:
                case EventMessage(subscription_id=sub_id, event=event):
                    if sub_id == self._subscription_id:
                        self._handle_event(event)
                case OkMessage(event_id=event_id, accepted=False, message=message):
                    self._handle_rejection(event_id, message)
                case EoseMessage(subscription_id=sub_id):
                    self._logger.debug("signer_eose", subscription=sub_id)
                case ClosedMessage(subscription_id=sub_id, message=message):
                    if sub_id == self._subscription_id:
                        self._subscription_ready.clear()
                        self._logger.warning("signer_subscription_closed", reason=message)
                case _:
                    pass

    # -------------------------------------------------------------------------
    # Inbound events
    # -------------------------------------------------------------------------

    def _handle_event(self, event: ProtocolEvent) -> None:
        session = self._session
        if session is None or event.kind != NIP46_KIND:
            return
        buffer = self._config.clock_drift_buffer
        if event.created_at < session.session_started_at - buffer:
            self._logger.debug(
                "signer_event_stale",
                id=short_hex(event.id),
                created_at=event.created_at,
                session_started_at=session.session_started_at,
            )
            return
        recipients = event.tag_values("p")
        if recipients and session.client_pubkey not in recipients:
            return

        try:
            if not verify_event(event):
                raise InvalidSignatureError(f"event {event.id} does not verify")
            plaintext = self._decrypt(session, event)
            response = Nip46Response.from_json(plaintext)
        except (CryptoError, ProtocolParseError) as e:
            self._logger.warning(
                "signer_event_rejected", sender=short_hex(event.pubkey), error=str(e)
            )
            return

        if response.id is not None:
            pending = self._pending.get(response.id)
            if pending is not None:
                try:
                    pending.check_fresh(event.created_at, buffer)
                except StaleResponseError as e:
                    self._logger.debug("signer_response_stale", id=response.id, error=str(e))
                    return
                self._pending.resolve(response.id, response)
                return

        if response.is_ack(session.secret):
            self._handle_ack(session, event.pubkey)
            return
        self._logger.debug("signer_response_unmatched", id=response.id)

    def _decrypt(self, session: BunkerSession, event: ProtocolEvent) -> str:
        sender = bytes.fromhex(event.pubkey)
        # some signers still answer with NIP-04
        if "?iv=" in event.content:
            return nip04.decrypt(event.content, session.client_keys.private_key, sender)
        return nip44.decrypt(event.content, session.client_keys.private_key, sender)

    def _handle_ack(self, session: BunkerSession, bunker_pubkey: str) -> None:
        match self._state:
            case Authenticated():
                if session.bunker_pubkey != bunker_pubkey:
                    self._session = session.with_bunker(bunker_pubkey)
                    if self._session.user_pubkey is not None:
                        self._store.save(self._session.to_saved())
                self._logger.info("signer_reconnected", bunker=short_hex(bunker_pubkey))
            case Connecting():
                self._logger.debug("duplicate_ack_ignored", bunker=short_hex(bunker_pubkey))
            case _:
                self._session = session.with_bunker(bunker_pubkey)
                self._logger.info("signer_acknowledged", bunker=short_hex(bunker_pubkey))
                self._set_state(Connecting())
                self._handshake = asyncio.create_task(
                    self._complete_handshake(), name="signer-handshake"
                )

    async def _complete_handshake(self) -> None:
        try:
            pubkey = await self.get_public_key()
        except SignerCancelledError:
            return
        except (SignerError, ConnectivityError) as e:
            self._logger.warning("handshake_failed", error=str(e))
            if not isinstance(self._state, AuthError):
                self._set_state(AuthError(f"Failed to get public key: {e}"))
            return

        session = self._session
        if session is None:
            return
        self._session = session.with_user(pubkey)
        self._store.save(self._session.to_saved())
        self._connection_uri = None
        self._set_state(Authenticated(pubkey))
        self._logger.info("login_completed", user=short_hex(pubkey))

    def _handle_rejection(self, event_id: str, message: str) -> None:
        request_id = self._outbound.pop(event_id, None)
        if request_id is None:
            return
        self._logger.warning("signer_request_rejected", id=request_id, reason=message)
        self._pending.cancel(request_id, SignerError(f"relay rejected request: {message}"))
        lowered = message.lower()
        if any(hint in lowered for hint in _CLOCK_HINTS):
            self._set_state(AuthError(CLOCK_REJECTION_MESSAGE))


__all__ = [
    "CLOCK_REJECTION_MESSAGE",
    "AuthStateListener",
    "Clock",
    "RemoteSignerSession",
]
