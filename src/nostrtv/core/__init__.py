"""Core layer: relay pool, subscriptions and the ambient stack.

Sits in the middle of the diamond DAG next to ``nostrtv.nips`` and
``nostrtv.utils`` and is depended upon by ``nostrtv.services``.

Attributes:
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrtv.core.logger.Logger].
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint for metrics exposition.
        See [MetricsServer][nostrtv.core.metrics.MetricsServer].
    YAML: Safe YAML loading with ``yaml.safe_load()`` to prevent code execution.
        See [load_yaml()][nostrtv.core.yaml.load_yaml].
    pool: [RelayPool][nostrtv.core.pool.RelayPool], the multi-relay fan-out
        and merged inbound stream.
    subscriptions:
        [SubscriptionCoordinator][nostrtv.core.subscriptions.SubscriptionCoordinator]
        and the two-timer [EoseTracker][nostrtv.core.subscriptions.EoseTracker].

Note:
    ``pool`` and ``subscriptions`` are not re-exported here because they
    import ``nostrtv.nips``, which in turn imports
    ``nostrtv.core.exceptions``. Import them from their modules::

        from nostrtv.core.pool import RelayPool
        from nostrtv.core.subscriptions import SubscriptionCoordinator
"""

from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    CryptoError,
    DecryptError,
    InvalidSignatureError,
    NostrTvError,
    NotAuthenticatedError,
    ProtocolParseError,
    SignerCancelledError,
    SignerError,
    SignerRequestError,
    SignerTimeoutError,
    StaleResponseError,
    UnsupportedVersionError,
)
from .logger import Logger, StructuredFormatter, configure_logging, format_kv_pairs
from .metrics import MetricsConfig, MetricsServer, start_metrics_server
from .yaml import load_yaml


__all__ = [
    "ConfigurationError",
    "ConnectivityError",
    "CryptoError",
    "DecryptError",
    "InvalidSignatureError",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "NostrTvError",
    "NotAuthenticatedError",
    "ProtocolParseError",
    "SignerCancelledError",
    "SignerError",
    "SignerRequestError",
    "SignerTimeoutError",
    "StaleResponseError",
    "StructuredFormatter",
    "UnsupportedVersionError",
    "configure_logging",
    "format_kv_pairs",
    "load_yaml",
    "start_metrics_server",
]
