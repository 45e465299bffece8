"""Nostr key management and WebSocket transport.

The utils layer sits in the middle of the diamond DAG, depending only on
[nostrtv.models][nostrtv.models]. It provides low-level network and
cryptographic utilities used by [nostrtv.nips][nostrtv.nips],
[nostrtv.core][nostrtv.core] and [nostrtv.services][nostrtv.services].

Attributes:
    keys: Key generation and ECDH shared secrets.
    transport: [RelayLink][nostrtv.utils.transport.RelayLink], one aiohttp
        WebSocket per relay with an ordered event stream.

Note:
    The utils layer has **zero** imports from ``nostrtv.core`` or
    ``nostrtv.services``. This strict dependency boundary ensures the
    diamond DAG architecture is maintained.
"""
