r"""nostrtv -- Nostr client core for live streaming clients.

Relay connectivity, EOSE-aware subscriptions, event cryptography and a
remote signer (NIP-46) session, without any UI.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Signer, queries, publishers, store
             /   |   \
          core  nips  utils    Pool/subscriptions, protocol, transport
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O.
    core: Relay pool, subscription coordinator, exceptions, logging,
        metrics.
    nips: NIP-01 events, NIP-04/NIP-44 encryption, NIP-46 payloads, relay
        messages and event builders.
    utils: Key management and WebSocket transport.
    services: Remote signer session, stream queries, signing consumers and
        configuration.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrtv.models import Filter
        from nostrtv.core.pool import RelayPool

    Top-level imports (``from nostrtv import RelayPool``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrtv")

__all__ = [
    "ClientConfig",
    "Filter",
    "KeyPair",
    "LiveStream",
    "Logger",
    "ProtocolEvent",
    "Relay",
    "RelayPool",
    "RemoteSignerSession",
    "StreamQueries",
    "SubscriptionCoordinator",
    "TimeoutConfig",
    "UnsignedEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("nostrtv.core.logger", "Logger"),
    "RelayPool": ("nostrtv.core.pool", "RelayPool"),
    "SubscriptionCoordinator": ("nostrtv.core.subscriptions", "SubscriptionCoordinator"),
    "TimeoutConfig": ("nostrtv.core.subscriptions", "TimeoutConfig"),
    "Filter": ("nostrtv.models", "Filter"),
    "KeyPair": ("nostrtv.models", "KeyPair"),
    "LiveStream": ("nostrtv.models", "LiveStream"),
    "ProtocolEvent": ("nostrtv.models", "ProtocolEvent"),
    "Relay": ("nostrtv.models", "Relay"),
    "UnsignedEvent": ("nostrtv.models", "UnsignedEvent"),
    "ClientConfig": ("nostrtv.services", "ClientConfig"),
    "RemoteSignerSession": ("nostrtv.services", "RemoteSignerSession"),
    "StreamQueries": ("nostrtv.services", "StreamQueries"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrtv' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
