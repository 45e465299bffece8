"""CLI entry point for the nostrtv client core.

Provides a small command-line client over the relay pool, the subscription
coordinator and the remote signer session.

Examples:
    ```bash
    python -m nostrtv login --relay wss://relay.primal.net
    python -m nostrtv whoami
    python -m nostrtv query --kind 30311 --limit 20 --preset discovery
    python -m nostrtv streams
    python -m nostrtv chat 30311:<host>:<id> "hello stream"
    python -m nostrtv presence 30311:<host>:<id>
    python -m nostrtv logout
    ```
"""

import argparse
import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from nostrtv.core.exceptions import NostrTvError
from nostrtv.core.logger import Logger, configure_logging
from nostrtv.core.metrics import start_metrics_server
from nostrtv.core.pool import RelayPool
from nostrtv.core.subscriptions import Preset, SubscriptionCoordinator, TimeoutConfig
from nostrtv.models.filter import Filter
from nostrtv.services.configs import ClientConfig
from nostrtv.services.publishers import ChatPublisher, PresencePublisher
from nostrtv.services.queries import StreamQueries
from nostrtv.services.session_store import FileSessionStore
from nostrtv.services.signer import RemoteSignerSession


DEFAULT_CONFIG = Path("config") / "nostrtv.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(prog="nostrtv", description="nostrTV client core")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Client config path (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log records")

    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Pair with a remote signer app")
    login.add_argument("--relay", help="Relay for signer traffic (default: from config)")
    login.add_argument(
        "--timeout", type=float, default=120.0, help="Seconds to wait for the signer"
    )

    commands.add_parser("logout", help="Forget the saved signer session")
    commands.add_parser("whoami", help="Print the pubkey of the saved session")

    query = commands.add_parser("query", help="Fetch events from the relay pool")
    query.add_argument("--kind", type=int, action="append", default=[], help="Event kind")
    query.add_argument("--author", action="append", default=[], help="Author pubkey (hex)")
    query.add_argument("--limit", type=int, default=20, help="Max events per relay")
    query.add_argument(
        "--preset",
        choices=[p.value for p in Preset],
        default=Preset.DISCOVERY.value,
        help="EOSE timing preset",
    )
    query.add_argument(
        "--complete", action="store_true", help="Wait for every relay instead of the first batch"
    )

    streams = commands.add_parser("streams", help="List live streams")
    streams.add_argument("--all", action="store_true", help="Include planned and ended streams")
    streams.add_argument("--limit", type=int, default=100, help="Max announcements per relay")

    chat = commands.add_parser("chat", help="Send a live chat message")
    chat.add_argument("a_tag", help="Live activity address (30311:<pubkey>:<d>)")
    chat.add_argument("message", help="Message text")

    presence = commands.add_parser("presence", help="Announce presence until interrupted")
    presence.add_argument("a_tag", help="Live activity address (30311:<pubkey>:<d>)")

    return parser.parse_args(argv)


def load_config(path: Path) -> ClientConfig:
    """Load the client config, falling back to defaults if the file is missing."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return ClientConfig()
    return ClientConfig.from_yaml(path)


def _install_stop_event() -> asyncio.Event:
    stop = asyncio.Event()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)
    return stop


async def _restored_signer(config: ClientConfig) -> RemoteSignerSession | None:
    signer = RemoteSignerSession(FileSessionStore(config.session_file), config.signer)
    if not await signer.restore_session():
        logger.error("not_logged_in", hint="run `nostrtv login` first")
        return None
    return signer


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_login(config: ClientConfig, args: argparse.Namespace) -> int:
    signer = RemoteSignerSession(FileSessionStore(config.session_file), config.signer)
    async with signer:
        uri = await signer.start_login(args.relay)
        print(uri, flush=True)
        pubkey = await signer.wait_until_authenticated(args.timeout)
    print(pubkey)
    return 0


async def cmd_logout(config: ClientConfig, _args: argparse.Namespace) -> int:
    signer = RemoteSignerSession(FileSessionStore(config.session_file), config.signer)
    await signer.logout()
    return 0


async def cmd_whoami(config: ClientConfig, _args: argparse.Namespace) -> int:
    saved = FileSessionStore(config.session_file).load()
    if saved is None:
        print("not logged in", file=sys.stderr)
        return 1
    print(saved.user_pubkey)
    return 0


async def cmd_query(config: ClientConfig, args: argparse.Namespace) -> int:
    query_filter = Filter(kinds=args.kind, authors=args.author, limit=args.limit)
    async with RelayPool(config.pool) as pool:
        if not pool.connected_count:
            logger.error("no_relay_reachable", relays=len(config.pool.relays))
            return 1
        async with SubscriptionCoordinator(pool) as coordinator:
            events = await coordinator.fetch(
                query_filter,
                config=TimeoutConfig.preset(args.preset),
                wait_complete=args.complete,
            )
    for event in events:
        print(event.to_json())
    return 0


async def cmd_streams(config: ClientConfig, args: argparse.Namespace) -> int:
    async with RelayPool(config.pool) as pool:
        if not pool.connected_count:
            logger.error("no_relay_reachable", relays=len(config.pool.relays))
            return 1
        async with SubscriptionCoordinator(pool) as coordinator:
            streams = await StreamQueries(coordinator).fetch_live_streams(
                limit=args.limit, with_streamers=True
            )
    for stream in streams:
        if args.all or stream.is_live:
            print(f"{stream.a_tag}\t{stream.status}\t{stream.streamer_name or ''}\t{stream.title}")
    return 0


async def cmd_chat(config: ClientConfig, args: argparse.Namespace) -> int:
    signer = await _restored_signer(config)
    if signer is None:
        return 1
    async with signer, RelayPool(config.pool) as pool:
        event = await ChatPublisher(signer, pool).send_message(args.a_tag, args.message)
    print(event.id)
    return 0


async def cmd_presence(config: ClientConfig, args: argparse.Namespace) -> int:
    signer = await _restored_signer(config)
    if signer is None:
        return 1
    stop = _install_stop_event()
    async with signer, RelayPool(config.pool) as pool:
        presence = PresencePublisher(signer, pool)
        await presence.announce_join(args.a_tag)
        await stop.wait()
        await presence.announce_leave()
    return 0


COMMANDS: dict[str, Callable[[ClientConfig, argparse.Namespace], Awaitable[int]]] = {
    "login": cmd_login,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "query": cmd_query,
    "streams": cmd_streams,
    "chat": cmd_chat,
    "presence": cmd_presence,
}


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load config, and run the command."""
    args = parse_args(argv)
    configure_logging(args.log_level, json_output=args.json_logs)

    try:
        config = load_config(args.config)
    except (NostrTvError, ValueError) as e:
        logger.error("config_invalid", path=str(args.config), error=str(e))
        return 2

    metrics_server = await start_metrics_server(config.metrics)
    if config.metrics.enabled:
        logger.info("metrics_server_started", host=config.metrics.host, port=config.metrics.port)
    try:
        return await COMMANDS[args.command](config, args)
    except NostrTvError as e:
        logger.error(f"{args.command}_failed", error=str(e))
        return 1
    except ValueError as e:
        logger.error(f"{args.command}_invalid", error=str(e))
        return 2
    finally:
        await metrics_server.stop()


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("interrupted")
        sys.exit(130)


if __name__ == "__main__":
    cli()
