"""Client services built on the core layer.

Services are the top layer of the diamond DAG, depending on
[nostrtv.core][nostrtv.core], [nostrtv.nips][nostrtv.nips],
[nostrtv.utils][nostrtv.utils], and [nostrtv.models][nostrtv.models].

Attributes:
    RemoteSignerSession: NIP-46 login and signing through a signer app.
    ChatPublisher, PresencePublisher, ZapRequestSigner: Signing consumers
        for live chat, room presence and zap requests.
    FileSessionStore, MemorySessionStore: Persistence of the signer session.
    StreamQueries, StreamFeed: Live stream, profile, follow list, chat and
        zap receipt queries.
    ClientConfig, SignerConfig: Pydantic configuration models.

Examples:
    ```python
    from nostrtv.core.pool import RelayPool
    from nostrtv.services import ChatPublisher, FileSessionStore, RemoteSignerSession

    signer = RemoteSignerSession(FileSessionStore("session.json"))
    await signer.restore_session()
    async with RelayPool() as pool:
        await ChatPublisher(signer, pool).send_message(a_tag, "gm")
    ```
"""

from .configs import ClientConfig, SignerConfig
from .publishers import ChatPublisher, EventSigner, PresencePublisher, ZapRequestSigner
from .queries import StreamFeed, StreamQueries
from .session_store import FileSessionStore, MemorySessionStore, SessionStore
from .signer import PendingRequests, RemoteSignerSession


__all__ = [
    "ChatPublisher",
    "ClientConfig",
    "EventSigner",
    "FileSessionStore",
    "MemorySessionStore",
    "PendingRequests",
    "PresencePublisher",
    "RemoteSignerSession",
    "SessionStore",
    "SignerConfig",
    "StreamFeed",
    "StreamQueries",
    "ZapRequestSigner",
]
