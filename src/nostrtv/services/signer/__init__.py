"""Remote signer (NIP-46) client.

Attributes:
    RemoteSignerSession: Login state machine, request correlation and
        event signing through a signer app.
        See [RemoteSignerSession][nostrtv.services.signer.session.RemoteSignerSession].
    PendingRequests: Request table with exactly-once completion.
        See [PendingRequests][nostrtv.services.signer.pending.PendingRequests].
"""

from .pending import PendingRequest, PendingRequests
from .session import CLOCK_REJECTION_MESSAGE, AuthStateListener, Clock, RemoteSignerSession


__all__ = [
    "CLOCK_REJECTION_MESSAGE",
    "AuthStateListener",
    "Clock",
    "PendingRequest",
    "PendingRequests",
    "RemoteSignerSession",
]
