"""
Line chat over a Tether TCP link.

Run with:
    python -m tether listen
    python -m tether connect <host[:port]>

Lines typed on stdin are sent to the peer; inbound lines are printed.
"""

from __future__ import annotations

import argparse
import atexit
import logging
import signal
import sys
import threading

from .config import (
    CONFIG_FILE,
    VARIANT_SECURE,
    VARIANT_INSECURE,
    RuntimeConfig,
    load_config_file,
    apply_config_file,
    save_default_config,
)
from .events import (
    LinkEvent,
    QueueEventSink,
    RoleChanged,
    PeerIdentified,
    InboundFrame,
    OutboundAck,
    Notice,
)
from .exceptions import ConfigError
from .logging_setup import setup_logging
from .manager import ConnectionManager
from .tcp import TcpTransport

logger = logging.getLogger("tether.cli")


def format_event(event: LinkEvent) -> str:
    """Render an event as one line of chat output."""
    if isinstance(event, InboundFrame):
        return "< " + event.data.decode("utf-8", errors="replace").rstrip("\r\n")
    if isinstance(event, OutboundAck):
        return "> " + event.data.decode("utf-8", errors="replace").rstrip("\r\n")
    if isinstance(event, RoleChanged):
        return f"* {event.role.name.lower()}"
    if isinstance(event, PeerIdentified):
        return f"* connected to {event.name} ({event.variant})"
    if isinstance(event, Notice):
        return f"! {event.message}"
    return f"? {event!r}"


def _setup_signal_handlers(stop_flag: threading.Event) -> None:
    """Configure signal handlers for graceful shutdown."""

    def _shutdown_handler(signum: int, frame) -> None:
        logger.info(f"[SHUTDOWN] Received {signal.Signals(signum).name}, shutting down...")
        stop_flag.set()

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)


def _print_events(sink: QueueEventSink, stop_flag: threading.Event) -> None:
    while not stop_flag.is_set():
        event = sink.get(timeout=0.5)
        if event is not None:
            print(format_event(event), flush=True)


def _read_input(manager: ConnectionManager, stop_flag: threading.Event) -> None:
    for line in sys.stdin:
        if not line.endswith("\n"):
            line += "\n"
        if not manager.send(line.encode("utf-8")):
            print("! not connected", flush=True)
    stop_flag.set()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="tether",
        description="Tether - line chat over a single managed link",
    )
    ap.add_argument(
        "mode",
        nargs="?",
        choices=["listen", "connect"],
        default="listen",
        help="Wait for a peer or dial one (default: listen)",
    )
    ap.add_argument(
        "peer",
        nargs="?",
        default="",
        help="Peer address for connect mode (host or host:port)",
    )
    ap.add_argument(
        "--variant",
        default=VARIANT_SECURE,
        choices=[VARIANT_SECURE, VARIANT_INSECURE],
        help="Service variant to dial (default: secure)",
    )
    ap.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable file logging",
    )
    ap.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    ap.add_argument(
        "--config",
        help=f"Path to config file (default: {CONFIG_FILE})",
    )
    ap.add_argument(
        "--init-config",
        action="store_true",
        help="Generate default configuration file and exit",
    )
    return ap


def main(argv=None) -> int:
    """Main entry point for the Tether chat client."""
    ap = build_parser()
    args = ap.parse_args(argv)

    if args.init_config:
        config_path = args.config or CONFIG_FILE
        if save_default_config(config_path):
            print(f"Default configuration saved to: {config_path}")
            return 0
        print(f"Failed to save configuration to: {config_path}")
        return 1

    if args.mode == "connect" and not args.peer:
        ap.error("connect requires a peer address")

    config = RuntimeConfig(
        mode=args.mode,
        peer=args.peer,
        variant=args.variant,
        log_to_file=not args.no_log_file,
        log_level=args.log_level,
    )
    try:
        apply_config_file(config, load_config_file(args.config))
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    setup_logging(log_to_file=config.log_to_file, log_level=config.log_level)

    stop_flag = threading.Event()
    _setup_signal_handlers(stop_flag)

    sink = QueueEventSink(config.link.event_queue_size)
    manager = ConnectionManager(TcpTransport(config.link), sink, config.link)
    atexit.register(lambda: logger.info(manager.format_summary()))

    threading.Thread(target=_print_events, args=(sink, stop_flag), name="Printer", daemon=True).start()
    threading.Thread(target=_read_input, args=(manager, stop_flag), name="Input", daemon=True).start()

    if config.mode == "connect":
        manager.connect(config.peer, config.variant)
    else:
        manager.start()

    try:
        stop_flag.wait()
    finally:
        manager.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
