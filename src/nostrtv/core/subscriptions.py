"""
EOSE-aware subscriptions across many relays.

A query sent to N relays finishes when every relay has sent ``EOSE`` (end of
stored events), but one slow relay must not hold back results the others
already delivered. [EoseTracker][nostrtv.core.subscriptions.EoseTracker]
implements a two-timer strategy per subscription:

* **fast path**: once ``min_relays_before_timeout`` relays have sent EOSE, a
  one-shot ``eose_timeout_ms`` timer starts; when it fires the subscription
  is *initial batch ready* (but not necessarily complete).
* **all reported**: when every relay has sent EOSE both timers are
  cancelled and the subscription is ready and complete at once.
* **safety net**: a ``max_wait_ms`` timer started with the subscription
  forces ready and complete even if relays never answer.

Each transition fires at most once, guarded by a lock so concurrent EOSE
callbacks and timer firings cannot double-invoke a callback.

[SubscriptionCoordinator][nostrtv.core.subscriptions.SubscriptionCoordinator]
wires trackers to a [RelayPool][nostrtv.core.pool.RelayPool]: it consumes the
merged stream, routes ``EVENT`` and ``EOSE`` frames by subscription id and
deduplicates events by id. Query timing (time to first event, time to the
initial batch, how many events had arrived by then) is logged when a
subscription completes and recorded as Prometheus histograms.

Examples:
    ```python
    coordinator = SubscriptionCoordinator(pool)
    events = await coordinator.fetch(
        Filter(kinds=[30311], limit=50),
        config=TimeoutConfig.preset(Preset.DISCOVERY),
    )
    ```
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, model_validator

from nostrtv.models.event import ProtocolEvent
from nostrtv.models.filter import Filter
from nostrtv.nips.messages import ClosedMessage, EoseMessage, EventMessage

from .logger import Logger
from .metrics import EOSE_COMPLETE_SECONDS, EOSE_INITIAL_BATCH_SECONDS, QUERY_FIRST_EVENT_SECONDS
from .pool import RelayPool


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TimeoutConfig(BaseModel):
    """Timing of the two-timer EOSE strategy.

    All durations are in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    eose_timeout_ms: int = Field(
        default=500, gt=0, description="Grace period after the first EOSE(s)"
    )
    max_wait_ms: int = Field(
        default=3000, gt=0, description="Hard upper bound on the initial batch"
    )
    min_relays_before_timeout: int = Field(
        default=1, ge=1, description="EOSE count that starts the grace period"
    )
    name: str = Field(default="custom", description="Label used in logs and metrics")

    @model_validator(mode="after")
    def _check_order(self) -> TimeoutConfig:
        if self.max_wait_ms < self.eose_timeout_ms:
            raise ValueError("max_wait_ms must be >= eose_timeout_ms")
        return self

    @classmethod
    def preset(cls, name: Preset | str) -> TimeoutConfig:
        """Return the named preset.

        Raises:
            ValueError: If *name* is not a known preset.
        """
        return PRESETS[Preset(name)]


class Preset(StrEnum):
    """Named timing presets, tuned per query type."""

    DISCOVERY = "discovery"
    CHAT_JOIN = "chat_join"
    PROFILE = "profile"
    ZAP_RECEIPTS = "zap_receipts"
    FOLLOW_LIST = "follow_list"
    EXHAUSTIVE = "exhaustive"


PRESETS: Final[Mapping[Preset, TimeoutConfig]] = MappingProxyType(
    {
        Preset.DISCOVERY: TimeoutConfig(eose_timeout_ms=500, max_wait_ms=3000, name="discovery"),
        Preset.CHAT_JOIN: TimeoutConfig(eose_timeout_ms=300, max_wait_ms=2000, name="chat_join"),
        Preset.PROFILE: TimeoutConfig(eose_timeout_ms=400, max_wait_ms=2500, name="profile"),
        Preset.ZAP_RECEIPTS: TimeoutConfig(
            eose_timeout_ms=600, max_wait_ms=4000, name="zap_receipts"
        ),
        Preset.FOLLOW_LIST: TimeoutConfig(
            eose_timeout_ms=800, max_wait_ms=5000, name="follow_list"
        ),
        Preset.EXHAUSTIVE: TimeoutConfig(
            eose_timeout_ms=1500, max_wait_ms=8000, name="exhaustive"
        ),
    }
)


# ---------------------------------------------------------------------------
# EoseTracker
# ---------------------------------------------------------------------------


class EoseTracker:
    """Per-subscription EOSE bookkeeping with fast and safety timers.

    Timers run on the event loop that called
    [start()][nostrtv.core.subscriptions.EoseTracker.start].
    [on_eose()][nostrtv.core.subscriptions.EoseTracker.on_eose] may be called
    from any thread.

    Args:
        subscription_id: Subscription this tracker belongs to (for logs).
        config: Timer configuration.
        total_relays: Number of relays the subscription was sent to.
        on_initial_batch_ready: Called once when the initial batch is ready.
        on_all_complete: Called once when the subscription is complete.
    """

    def __init__(
        self,
        subscription_id: str,
        config: TimeoutConfig,
        total_relays: int,
        on_initial_batch_ready: Callable[[], None] | None = None,
        on_all_complete: Callable[[], None] | None = None,
    ) -> None:
        self.subscription_id = subscription_id
        self.config = config
        self._total_relays = total_relays
        self._on_ready = on_initial_batch_ready
        self._on_complete = on_all_complete
        self._lock = threading.Lock()
        self._eose_relays: set[str] = set()
        self._fast_timer_started = False
        self._ready = False
        self._complete = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fast_timer: asyncio.TimerHandle | None = None
        self._max_timer: asyncio.TimerHandle | None = None
        self._logger = Logger("subscriptions")

    # -- State --------------------------------------------------------------

    @property
    def eose_count(self) -> int:
        with self._lock:
            return len(self._eose_relays)

    @property
    def eose_relays(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._eose_relays)

    @property
    def total_relays(self) -> int:
        return self._total_relays

    @property
    def is_initial_batch_ready(self) -> bool:
        return self._ready

    @property
    def is_complete(self) -> bool:
        return self._complete

    # -- Control ------------------------------------------------------------

    def start(self) -> None:
        """Start the safety timer. Must be called from the event loop."""
        self._loop = asyncio.get_running_loop()
        if self._total_relays <= 0:
            self._finish("no_relays")
            return
        self._max_timer = self._loop.call_later(self.config.max_wait_ms / 1000, self._on_max_wait)

    def on_eose(self, relay_url: str) -> None:
        """Record an EOSE from *relay_url*; repeated EOSEs from one relay count once."""
        with self._lock:
            if self._complete or relay_url in self._eose_relays:
                return
            self._eose_relays.add(relay_url)
            count = len(self._eose_relays)
            all_reported = count >= self._total_relays
            start_fast = (
                not all_reported
                and not self._fast_timer_started
                and count >= self.config.min_relays_before_timeout
            )
            if start_fast:
                self._fast_timer_started = True

        if all_reported:
            self._finish("all_eose")
        elif start_fast:
            self._call_on_loop(self._start_fast_timer)

    def set_total_relays(self, total_relays: int) -> None:
        """Lower or raise the relay count after the request was actually sent."""
        with self._lock:
            self._total_relays = total_relays
            all_reported = len(self._eose_relays) >= total_relays
            pending = not self._complete
        if pending and all_reported:
            self._finish("all_eose" if total_relays else "no_relays")

    def cancel(self) -> None:
        """Stop both timers and mark complete without invoking callbacks."""
        self._cancel_timers()
        with self._lock:
            self._complete = True

    # -- Internals ----------------------------------------------------------

    def _call_on_loop(self, fn: Callable[[], None]) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            fn()
        else:
            loop.call_soon_threadsafe(fn)

    def _start_fast_timer(self) -> None:
        if self._complete or self._loop is None:
            return
        self._fast_timer = self._loop.call_later(
            self.config.eose_timeout_ms / 1000, self._on_fast_timeout
        )

    def _on_fast_timeout(self) -> None:
        self._fast_timer = None
        if self._fire_ready():
            self._logger.debug(
                "eose_timeout_fired",
                subscription=self.subscription_id,
                eose=self.eose_count,
                relays=self._total_relays,
            )

    def _on_max_wait(self) -> None:
        self._max_timer = None
        if not self._complete:
            self._logger.debug(
                "eose_max_wait_reached",
                subscription=self.subscription_id,
                eose=self.eose_count,
                relays=self._total_relays,
            )
        self._finish("max_wait")

    def _finish(self, reason: str) -> None:
        self._call_on_loop(self._cancel_timers)
        self._fire_ready()
        if self._fire_complete():
            self._logger.debug("subscription_complete", subscription=self.subscription_id, reason=reason)

    def _cancel_timers(self) -> None:
        for timer in (self._fast_timer, self._max_timer):
            if timer is not None:
                timer.cancel()
        self._fast_timer = None
        self._max_timer = None

    def _fire_ready(self) -> bool:
        with self._lock:
            if self._ready or self._complete:
                return False
            self._ready = True
        if self._on_ready is not None:
            self._on_ready()
        return True

    def _fire_complete(self) -> bool:
        with self._lock:
            if self._complete:
                return False
            self._complete = True
        if self._on_complete is not None:
            self._on_complete()
        return True


# ---------------------------------------------------------------------------
# Query timing
# ---------------------------------------------------------------------------


class QueryTracker:
    """Timing of one subscription, logged and recorded when it finishes."""

    def __init__(self, query_type: str, subscription_id: str, relay_count: int) -> None:
        self.query_type = query_type
        self.subscription_id = subscription_id
        self.relay_count = relay_count
        self.started_at = time.monotonic()
        self.first_event_at: float | None = None
        self.initial_batch_at: float | None = None
        self.events_received = 0
        self.events_at_initial_batch = 0
        self.relays_at_initial_batch = 0

    def on_event(self) -> None:
        self.events_received += 1
        if self.first_event_at is None:
            self.first_event_at = time.monotonic()
            QUERY_FIRST_EVENT_SECONDS.labels(preset=self.query_type).observe(
                self.first_event_at - self.started_at
            )

    def on_initial_batch(self, relays_responded: int) -> None:
        if self.initial_batch_at is not None:
            return
        self.initial_batch_at = time.monotonic()
        self.events_at_initial_batch = self.events_received
        self.relays_at_initial_batch = relays_responded
        EOSE_INITIAL_BATCH_SECONDS.labels(preset=self.query_type).observe(
            self.initial_batch_at - self.started_at
        )

    def finish(self, logger: Logger) -> None:
        now = time.monotonic()
        EOSE_COMPLETE_SECONDS.labels(preset=self.query_type).observe(now - self.started_at)
        logger.info(
            "query_timing",
            query=self.query_type,
            subscription=self.subscription_id,
            total_ms=_ms(now - self.started_at),
            first_event_ms=_ms(self.first_event_at - self.started_at) if self.first_event_at else None,
            initial_batch_ms=(
                _ms(self.initial_batch_at - self.started_at) if self.initial_batch_at else None
            ),
            events=self.events_received,
            events_at_batch=self.events_at_initial_batch,
            relays=self.relay_count,
            relays_at_batch=self.relays_at_initial_batch,
        )


def _ms(seconds: float) -> int:
    return round(seconds * 1000)


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


EventCallback = Callable[[ProtocolEvent, str], None]


class Subscription:
    """Caller-side handle of an active subscription.

    Events are deduplicated by id across relays. ``events`` returns them
    newest first.
    """

    def __init__(
        self,
        coordinator: SubscriptionCoordinator,
        subscription_id: str,
        filters: tuple[Filter, ...],
        config: TimeoutConfig,
        total_relays: int,
        on_event: EventCallback | None = None,
    ) -> None:
        self.id = subscription_id
        self.filters = filters
        self.config = config
        self._coordinator = coordinator
        self._on_event = on_event
        self._events: dict[str, ProtocolEvent] = {}
        self._ready = asyncio.Event()
        self._complete = asyncio.Event()
        self._closed = False
        self.timing = QueryTracker(config.name, subscription_id, total_relays)
        self.tracker = EoseTracker(
            subscription_id,
            config,
            total_relays,
            on_initial_batch_ready=self._handle_ready,
            on_all_complete=self._handle_complete,
        )

    def __repr__(self) -> str:
        return (
            f"Subscription(id={self.id!r}, events={len(self._events)}, "
            f"ready={self.is_initial_batch_ready}, complete={self.is_complete})"
        )

    @property
    def events(self) -> list[ProtocolEvent]:
        """Received events, deduplicated, newest first."""
        return sorted(self._events.values(), key=lambda e: e.created_at, reverse=True)

    @property
    def event_count(self) -> int:
        return len(self._events)

    @property
    def is_initial_batch_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_complete(self) -> bool:
        return self._complete.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def wait_initial_batch(self, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        """Wait for the initial batch; returns False if *timeout* elapsed first."""
        return await _wait(self._ready, timeout)

    async def wait_complete(self, timeout: float | None = None) -> bool:  # noqa: ASYNC109
        """Wait for completion; returns False if *timeout* elapsed first."""
        return await _wait(self._complete, timeout)

    async def close(self) -> None:
        """Send ``CLOSE`` to the relays and stop tracking this subscription."""
        await self._coordinator.unsubscribe(self.id)

    # -- Routing (called by the coordinator) --------------------------------

    def _add_event(self, event: ProtocolEvent, relay_url: str) -> bool:
        if self._closed or event.id in self._events:
            return False
        self._events[event.id] = event
        self.timing.on_event()
        if self._on_event is not None:
            self._on_event(event, relay_url)
        return True

    def _handle_ready(self) -> None:
        self.timing.on_initial_batch(self.tracker.eose_count)
        self._ready.set()

    def _handle_complete(self) -> None:
        self._ready.set()
        self._complete.set()
        self.timing.finish(self._coordinator.logger)

    def _cancel(self) -> None:
        self._closed = True
        self.tracker.cancel()
        self._ready.set()
        self._complete.set()


async def _wait(event: asyncio.Event, timeout: float | None) -> bool:
    if timeout is None:
        await event.wait()
        return True
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
    except TimeoutError:
        return False
    return True


# ---------------------------------------------------------------------------
# SubscriptionCoordinator
# ---------------------------------------------------------------------------


class SubscriptionCoordinator:
    """Routes a pool's merged stream to subscriptions and tracks their EOSE.

    The coordinator is the single consumer of
    [RelayPool.messages()][nostrtv.core.pool.RelayPool.messages]. It starts
    consuming lazily on the first subscribe and stops on
    [stop()][nostrtv.core.subscriptions.SubscriptionCoordinator.stop] or when
    the pool disconnects.
    """

    def __init__(self, pool: RelayPool, *, id_prefix: str = "q") -> None:
        self._pool = pool
        self._id_prefix = id_prefix
        self._subscriptions: dict[str, Subscription] = {}
        self._task: asyncio.Task[None] | None = None
        self.logger = Logger("subscriptions")

    @property
    def active(self) -> list[str]:
        return list(self._subscriptions)

    def get(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions.get(subscription_id)

    def start(self) -> None:
        """Begin consuming the pool stream (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._consume(), name="subscription-coordinator")

    async def stop(self) -> None:
        """Stop consuming and cancel every subscription without closing them remotely."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        for sub in list(self._subscriptions.values()):
            sub._cancel()
        self._subscriptions.clear()

    async def subscribe(
        self,
        *filters: Filter,
        config: TimeoutConfig | None = None,
        subscription_id: str | None = None,
        on_event: EventCallback | None = None,
    ) -> Subscription:
        """Open a subscription on every connected relay.

        Args:
            *filters: One or more filters for the ``REQ``.
            config: EOSE timing; defaults to the discovery preset.
            subscription_id: Explicit id; a random one is generated otherwise.
            on_event: Called for every new (deduplicated) event with the relay
                it arrived from.

        Returns:
            The subscription handle. If no relay accepted the request the
            handle is already complete and empty.

        Raises:
            ValueError: If no filter is given or the id is already active.
        """
        if not filters:
            raise ValueError("subscribe needs at least one filter")
        config = config or PRESETS[Preset.DISCOVERY]
        sub_id = subscription_id or f"{self._id_prefix}-{uuid.uuid4().hex[:12]}"
        if sub_id in self._subscriptions:
            raise ValueError(f"subscription already active: {sub_id}")

        self.start()
        sub = Subscription(
            self, sub_id, tuple(filters), config, self._pool.connected_count, on_event
        )
        self._subscriptions[sub_id] = sub
        sub.tracker.start()

        accepted = await self._pool.subscribe(sub_id, *filters)
        sub.timing.relay_count = accepted
        sub.tracker.set_total_relays(accepted)
        if accepted == 0:
            self.logger.warning("subscription_not_sent", subscription=sub_id, reason="no_open_relays")
        else:
            self.logger.debug(
                "subscription_opened", subscription=sub_id, relays=accepted, preset=config.name
            )
        return sub

    async def unsubscribe(self, subscription_id: str) -> None:
        """Close *subscription_id* on the relays and forget it. Idempotent."""
        sub = self._subscriptions.pop(subscription_id, None)
        if sub is None:
            return
        sub._cancel()
        await self._pool.close_subscription(subscription_id)

    async def fetch(
        self,
        *filters: Filter,
        config: TimeoutConfig | None = None,
        wait_complete: bool = False,
    ) -> list[ProtocolEvent]:
        """Run a one-shot query and return the deduplicated events, newest first.

        Waits for the initial batch (or full completion with
        ``wait_complete=True``), then closes the subscription.
        """
        sub = await self.subscribe(*filters, config=config)
        try:
            if wait_complete:
                await sub.wait_complete()
            else:
                await sub.wait_initial_batch()
            return sub.events
        finally:
            await sub.close()

    async def _consume(self) -> None:
        async for envelope in self._pool.messages():
            message = envelope.message
            match message:
                case EventMessage(subscription_id=sub_id, event=event):
                    sub = self._subscriptions.get(sub_id)
                    if sub is not None:
                        sub._add_event(event, envelope.relay_url)
                case EoseMessage(subscription_id=sub_id):
                    sub = self._subscriptions.get(sub_id)
                    if sub is not None:
                        sub.tracker.on_eose(envelope.relay_url)
                case ClosedMessage(subscription_id=sub_id, message=reason):
                    sub = self._subscriptions.get(sub_id)
                    if sub is not None:
                        # a relay that closed the subscription will send nothing more
                        self.logger.info(
                            "subscription_closed_by_relay",
                            subscription=sub_id,
                            url=envelope.relay_url,
                            reason=reason,
                        )
                        sub.tracker.on_eose(envelope.relay_url)
                case _:
                    pass
        self.logger.debug("coordinator_stream_ended", pending=len(self._subscriptions))
        for sub in list(self._subscriptions.values()):
            sub.tracker.set_total_relays(sub.tracker.eose_count)
        self._subscriptions.clear()

    async def __aenter__(self) -> SubscriptionCoordinator:
        self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.stop()


__all__ = [
    "PRESETS",
    "EoseTracker",
    "Preset",
    "QueryTracker",
    "Subscription",
    "SubscriptionCoordinator",
    "TimeoutConfig",
]
