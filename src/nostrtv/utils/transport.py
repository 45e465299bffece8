"""WebSocket transport for a single relay.

Provides [RelayLink][nostrtv.utils.transport.RelayLink], one logical
connection to one relay endpoint built on ``aiohttp`` WebSockets. A link
reports its lifecycle and inbound frames as an ordered stream of
``LinkEvent`` values:

```text
LinkConnected                 -- the socket is open
LinkMessage(text)             -- a text frame arrived
LinkError(description)        -- connect or read failed
LinkDisconnected(reason)      -- the socket closed (not after disconnect())
```

Reconnection is never automatic: after a ``LinkDisconnected`` the owner may
call [connect()][nostrtv.utils.transport.RelayLink.connect] again. Once
[disconnect()][nostrtv.utils.transport.RelayLink.disconnect] has been
called the link is finished: the event stream ends and nothing further is
emitted.

Note:
    When ``allow_insecure`` is set the link builds an ``ssl.SSLContext``
    with ``CERT_NONE`` and ``check_hostname=False``. Only use it for relays
    with self-signed or expired certificates that are still wanted.

See Also:
    [RelayPool][nostrtv.core.pool.RelayPool]: Fans requests out to many links
        and merges their streams.
    [RemoteSignerSession][nostrtv.services.signer.RemoteSignerSession]: Talks
        to the signer relay over a single link.

Examples:
    ```python
    link = RelayLink("wss://relay.primal.net")
    if await link.connect():
        await link.send('["REQ","sub",{"kinds":[1],"limit":5}]')
        async for event in link.events():
            ...
    await link.disconnect()
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Protocol

import aiohttp
from pydantic import BaseModel, Field


logger = logging.getLogger("utils.transport")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RelayLinkConfig(BaseModel):
    """WebSocket settings shared by every link of a pool or session."""

    connect_timeout: float = Field(
        default=10.0, gt=0, description="Seconds allowed for the WebSocket handshake"
    )
    close_timeout: float = Field(
        default=5.0, gt=0, description="Seconds allowed to close socket and session"
    )
    heartbeat: float | None = Field(
        default=30.0, gt=0, description="Ping interval in seconds (None disables)"
    )
    max_message_size: int = Field(
        default=4 * 1024 * 1024, ge=1024, description="Largest accepted frame in bytes"
    )
    allow_insecure: bool = Field(
        default=False, description="Skip TLS certificate verification"
    )


# ---------------------------------------------------------------------------
# Link events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LinkConnected:
    pass


@dataclass(frozen=True, slots=True)
class LinkDisconnected:
    reason: str


@dataclass(frozen=True, slots=True)
class LinkMessage:
    text: str


@dataclass(frozen=True, slots=True)
class LinkError:
    description: str


LinkEvent = LinkConnected | LinkDisconnected | LinkMessage | LinkError


class Link(Protocol):
    """Structural interface of a relay link (real or fake)."""

    @property
    def url(self) -> str: ...

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> bool: ...

    async def send(self, text: str) -> bool: ...

    def events(self) -> AsyncIterator[LinkEvent]: ...

    async def disconnect(self) -> None: ...


LinkFactory = Callable[[str], Link]


def _insecure_ssl_context() -> ssl.SSLContext:
    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


# ---------------------------------------------------------------------------
# RelayLink
# ---------------------------------------------------------------------------


class RelayLink:
    """One persistent WebSocket connection to one relay.

    Attributes:
        url: Relay URL this link talks to.
    """

    def __init__(self, url: str, config: RelayLinkConfig | None = None) -> None:
        self._url = url
        self._config = config or RelayLinkConfig()
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._queue: asyncio.Queue[LinkEvent | None] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._finished = False

    def __repr__(self) -> str:
        return f"RelayLink(url={self._url!r}, connected={self.is_connected})"

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def _emit(self, event: LinkEvent) -> None:
        if not self._finished:
            self._queue.put_nowait(event)

    # -- Lifecycle ----------------------------------------------------------

    async def connect(self) -> bool:
        """Open the WebSocket; no-op if already open.

        Returns:
            True if the link is open when the call returns. Failures are
            reported as ``LinkError`` followed by ``LinkDisconnected`` and a
            False return, never raised.

        Raises:
            asyncio.CancelledError: If cancelled while connecting.
        """
        async with self._lock:
            if self._finished:
                return False
            if self.is_connected:
                return True

            connector = (
                aiohttp.TCPConnector(ssl=_insecure_ssl_context())
                if self._config.allow_insecure
                else None
            )
            session = aiohttp.ClientSession(connector=connector)
            try:
                ws = await asyncio.wait_for(
                    session.ws_connect(
                        self._url,
                        heartbeat=self._config.heartbeat,
                        max_msg_size=self._config.max_message_size,
                    ),
                    timeout=self._config.connect_timeout,
                )
            except asyncio.CancelledError:
                await session.close()
                logger.debug("ws_connect_cancelled url=%s", self._url)
                raise
            except TimeoutError:
                await session.close()
                self._report_failure(f"connection timeout after {self._config.connect_timeout}s")
                return False
            except (aiohttp.ClientError, OSError) as e:
                # ssl.SSLError is an OSError
                await session.close()
                self._report_failure(f"connection failed: {e}")
                return False

            self._session = session
            self._ws = ws
            self._emit(LinkConnected())
            self._reader = asyncio.create_task(self._read_loop(ws), name=f"relay-link:{self._url}")
            logger.debug("ws_connected url=%s", self._url)
            return True

    def _report_failure(self, description: str) -> None:
        logger.debug("ws_connect_failed url=%s error=%s", self._url, description)
        self._emit(LinkError(description))
        self._emit(LinkDisconnected(description))

    async def disconnect(self) -> None:
        """Release the socket and session and end the event stream.

        Idempotent. Sends that race with this call return False. After it
        returns the link emits nothing further.
        """
        if self._finished:
            return
        self._finished = True
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        await self._close_transport()
        self._queue.put_nowait(None)
        logger.debug("ws_disconnected url=%s", self._url)

    async def _close_transport(self) -> None:
        ws, self._ws = self._ws, None
        session, self._session = self._session, None
        # aiohttp can raise ClientError, ServerDisconnectedError, etc. during
        # close; teardown must complete regardless.
        if ws is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(ws.close(), timeout=self._config.close_timeout)
        if session is not None:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(session.close(), timeout=self._config.close_timeout)

    # -- I/O ----------------------------------------------------------------

    async def send(self, text: str) -> bool:
        """Write a text frame.

        Returns:
            True if the transport accepted the write, False while not
            connected or if the write failed.
        """
        ws = self._ws
        if self._finished or ws is None or ws.closed:
            return False
        try:
            await ws.send_str(text)
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            logger.debug("ws_send_failed url=%s error=%s", self._url, str(e))
            return False
        return True

    async def events(self) -> AsyncIterator[LinkEvent]:
        """Yield link events in order until the link is disconnected."""
        while True:
            event = await self._queue.get()
            if event is None:
                # re-arm so a second iterator also terminates
                self._queue.put_nowait(None)
                return
            yield event

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        reason = "closed by relay"
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._emit(LinkMessage(msg.data))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"read failed: {ws.exception()}"
                    self._emit(LinkError(reason))
                    break
                else:
                    logger.debug("ws_frame_ignored url=%s type=%s", self._url, msg.type.name)
        except (aiohttp.ClientError, OSError) as e:
            reason = f"read failed: {e}"
            self._emit(LinkError(reason))

        if ws.close_code is not None and reason == "closed by relay":
            reason = f"closed by relay (code {ws.close_code})"
        if self._ws is ws:
            self._reader = None
            await self._close_transport()
        logger.debug("ws_closed url=%s reason=%s", self._url, reason)
        self._emit(LinkDisconnected(reason))

    async def __aenter__(self) -> RelayLink:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.disconnect()
