"""
Signing consumers: live chat, presence and zap requests.

Each publisher builds an unsigned event with
[nostrtv.nips.event_builders][nostrtv.nips.event_builders], has it signed
by an [EventSigner][nostrtv.services.publishers.EventSigner] (normally a
[RemoteSignerSession][nostrtv.services.signer.RemoteSignerSession]) and,
except for zap requests, broadcasts the signed event through a
[RelayPool][nostrtv.core.pool.RelayPool].

Zap requests are not published: NIP-57 hands the signed request to the
recipient's LNURL endpoint, which is outside this package.
"""

from __future__ import annotations

from typing import Protocol

from nostrtv.core.exceptions import ConnectivityError, NotAuthenticatedError
from nostrtv.core.logger import Logger, short_hex
from nostrtv.core.pool import RelayPool
from nostrtv.models.event import ProtocolEvent, UnsignedEvent
from nostrtv.nips.event_builders import (
    DEFAULT_ZAP_RELAYS,
    build_live_chat,
    build_presence_join,
    build_presence_leave,
    build_zap_request,
)


class EventSigner(Protocol):
    """What a publisher needs from a signer."""

    def is_authenticated(self) -> bool: ...

    def get_user_pubkey(self) -> str | None: ...

    async def sign_event(self, unsigned_event_json: str) -> str: ...


async def _sign(signer: EventSigner, unsigned: UnsignedEvent) -> ProtocolEvent:
    if not signer.is_authenticated():
        raise NotAuthenticatedError("sign in with a remote signer first")
    return ProtocolEvent.from_json(await signer.sign_event(unsigned.to_json()))


class _Publisher:
    def __init__(self, signer: EventSigner, pool: RelayPool, logger_name: str) -> None:
        self._signer = signer
        self._pool = pool
        self._logger = Logger(logger_name)

    async def _sign_and_publish(self, unsigned: UnsignedEvent) -> ProtocolEvent:
        event = await _sign(self._signer, unsigned)
        accepted = await self._pool.publish(event)
        if not accepted:
            raise ConnectivityError("no relay accepted the event")
        return event


class ChatPublisher(_Publisher):
    """Sends kind 1311 chat messages to a live activity."""

    def __init__(self, signer: EventSigner, pool: RelayPool) -> None:
        super().__init__(signer, pool, "chat")

    async def send_message(self, a_tag: str, content: str) -> ProtocolEvent:
        """Sign and broadcast a chat message.

        Returns:
            The published event.

        Raises:
            ValueError: If the message is blank or *a_tag* is malformed.
            NotAuthenticatedError: If no signer session is authenticated.
            ConnectivityError: If no relay accepted the event.
        """
        event = await self._sign_and_publish(build_live_chat(a_tag, content.strip()))
        self._logger.info("chat_message_sent", id=short_hex(event.id), stream=a_tag)
        return event


class PresencePublisher(_Publisher):
    """Announces the user joining and leaving a live activity (kind 10312)."""

    def __init__(self, signer: EventSigner, pool: RelayPool) -> None:
        super().__init__(signer, pool, "presence")
        self._current: str | None = None

    @property
    def current_activity(self) -> str | None:
        return self._current

    async def announce_join(self, a_tag: str) -> ProtocolEvent:
        event = await self._sign_and_publish(build_presence_join(a_tag))
        self._current = a_tag
        self._logger.info("presence_joined", stream=a_tag)
        return event

    async def announce_leave(self) -> ProtocolEvent | None:
        """Replace the presence event with an empty one.

        Returns None without signing anything when no join was announced.
        """
        if self._current is None:
            return None
        event = await self._sign_and_publish(build_presence_leave())
        self._logger.info("presence_left", stream=self._current)
        self._current = None
        return event


class ZapRequestSigner:
    """Builds and signs kind 9734 zap requests for an LNURL callback."""

    def __init__(self, signer: EventSigner) -> None:
        self._signer = signer
        self._logger = Logger("zaps")

    async def sign_zap_request(  # noqa: PLR0913
        self,
        *,
        recipient_pubkey: str,
        amount_msats: int,
        lnurl: str,
        comment: str = "",
        a_tag: str | None = None,
        relays: tuple[str, ...] = DEFAULT_ZAP_RELAYS,
    ) -> str:
        """Return the signed zap request JSON to pass as the ``nostr`` parameter."""
        unsigned = build_zap_request(
            recipient_pubkey=recipient_pubkey,
            amount_msats=amount_msats,
            lnurl=lnurl,
            comment=comment,
            a_tag=a_tag,
            relays=relays,
        )
        event = await _sign(self._signer, unsigned)
        self._logger.info(
            "zap_request_signed",
            recipient=short_hex(recipient_pubkey),
            amount_msats=amount_msats,
        )
        return event.to_json()


__all__ = [
    "ChatPublisher",
    "EventSigner",
    "PresencePublisher",
    "ZapRequestSigner",
]
