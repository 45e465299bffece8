"""
Prometheus metrics collection and HTTP exposition.

Defines module-level metric objects (singletons, thread-safe) shared by the
relay pool, the subscription coordinator and the remote signer. Recording is
always on and cheap; exposing it over HTTP is optional.

The ``MetricsServer`` provides an async HTTP endpoint (via aiohttp) for
Prometheus scraping. Configuration is handled through ``MetricsConfig``,
which is embedded in [ClientConfig][nostrtv.services.configs.ClientConfig].

Architecture:
    RELAY_MESSAGES_TOTAL:       Inbound relay frames by type (and parse failures).
    RELAY_LINKS_OPEN:           Currently open relay links.
    EOSE_INITIAL_BATCH_SECONDS: Time from subscribe to initial batch ready.
    EOSE_COMPLETE_SECONDS:      Time from subscribe to completion.
    QUERY_FIRST_EVENT_SECONDS:  Time from subscribe to the first event.
    SIGNER_REQUESTS_TOTAL:      Remote signer RPCs by method and outcome.
    SIGNER_REQUEST_SECONDS:     Remote signer RPC latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True.
    """

    enabled: bool = Field(default=False, description="Expose metrics over HTTP")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Relay metrics
# ---------------------------------------------------------------------------

_LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1, 2, 3, 5, 8, 15)

RELAY_MESSAGES_TOTAL = Counter(
    "nostrtv_relay_messages_total",
    "Inbound relay frames by message type",
    ["type"],
)

RELAY_LINKS_OPEN = Gauge(
    "nostrtv_relay_links_open",
    "Relay links currently open in the pool",
)


# ---------------------------------------------------------------------------
# Query timing
# ---------------------------------------------------------------------------

EOSE_INITIAL_BATCH_SECONDS = Histogram(
    "nostrtv_eose_initial_batch_seconds",
    "Time from subscribe to initial batch ready",
    ["preset"],
    buckets=_LATENCY_BUCKETS,
)

EOSE_COMPLETE_SECONDS = Histogram(
    "nostrtv_eose_complete_seconds",
    "Time from subscribe to subscription complete",
    ["preset"],
    buckets=_LATENCY_BUCKETS,
)

QUERY_FIRST_EVENT_SECONDS = Histogram(
    "nostrtv_query_first_event_seconds",
    "Time from subscribe to the first event",
    ["preset"],
    buckets=_LATENCY_BUCKETS,
)


# ---------------------------------------------------------------------------
# Remote signer
# ---------------------------------------------------------------------------

SIGNER_REQUESTS_TOTAL = Counter(
    "nostrtv_signer_requests_total",
    "Remote signer requests by method and outcome",
    ["method", "outcome"],
)

SIGNER_REQUEST_SECONDS = Histogram(
    "nostrtv_signer_request_seconds",
    "Remote signer request latency",
    ["method"],
    buckets=(0.25, 0.5, 1, 2, 5, 10, 30, 60, 90),
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible /metrics endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... client runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for Prometheus scrape requests.

        No-op if metrics are disabled in the configuration.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the HTTP server. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a metrics server; the caller must ``stop()`` it."""
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
