"""Outstanding remote-signer requests keyed by request id.

Each entry is removed exactly once: by a matching response, by
cancellation, or by the caller giving up. Whichever happens first wins and
the others are no-ops. The table is owned by one event loop and never
touched from other threads, so no lock is needed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from nostrtv.core.exceptions import StaleResponseError
from nostrtv.nips.nip46 import Nip46Response


@dataclass(slots=True)
class PendingRequest:
    """One request waiting for its response.

    Attributes:
        request_id: NIP-46 request id.
        method: Method name, for logs and metrics.
        issued_at: Unix time the request was registered.
        future: Resolved with the response or failed with the cancel reason.
    """

    request_id: str
    method: str
    issued_at: int
    future: asyncio.Future[Nip46Response] = field(repr=False)

    def check_fresh(self, created_at: int, drift_buffer: int) -> None:
        """Raise if a response created at *created_at* predates this request.

        Raises:
            StaleResponseError: If *created_at* is more than *drift_buffer*
                seconds before ``issued_at``.
        """
        if self.issued_at - drift_buffer > created_at:
            raise StaleResponseError(
                f"response to {self.request_id} created at {created_at}, "
                f"request issued at {self.issued_at}"
            )


class PendingRequests:
    """Request table shared by the sender and the inbound message handler."""

    def __init__(self) -> None:
        self._entries: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def get(self, request_id: str) -> PendingRequest | None:
        return self._entries.get(request_id)

    def register(self, request_id: str, method: str, issued_at: int) -> PendingRequest:
        """Add a request; must happen before the request is sent.

        Raises:
            ValueError: If *request_id* is already pending.
        """
        if request_id in self._entries:
            raise ValueError(f"request already pending: {request_id}")
        entry = PendingRequest(
            request_id=request_id,
            method=method,
            issued_at=issued_at,
            future=asyncio.get_running_loop().create_future(),
        )
        self._entries[request_id] = entry
        return entry

    def resolve(self, request_id: str, response: Nip46Response) -> bool:
        """Complete *request_id* with *response*; False if it was not pending."""
        entry = self._entries.pop(request_id, None)
        if entry is None or entry.future.done():
            return False
        entry.future.set_result(response)
        return True

    def discard(self, request_id: str) -> bool:
        """Forget *request_id* without completing it (the caller gave up)."""
        return self._entries.pop(request_id, None) is not None

    def cancel(self, request_id: str, error: BaseException) -> bool:
        """Fail *request_id* with *error*; False if it was not pending."""
        entry = self._entries.pop(request_id, None)
        if entry is None or entry.future.done():
            return False
        entry.future.set_exception(error)
        return True

    def cancel_all(self, error: BaseException) -> int:
        """Fail every pending request with *error*; returns how many were failed."""
        entries = list(self._entries.values())
        self._entries.clear()
        failed = 0
        for entry in entries:
            if not entry.future.done():
                entry.future.set_exception(error)
                failed += 1
        return failed
