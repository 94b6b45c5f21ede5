#!/usr/bin/env python3
"""netd: network configuration daemon.

Usage:
    netd [--config FILE] [--socket PATH] [--backend memory|freebsd] [--load] [-v]

Listens on a UNIX stream socket. Every request is one length-prefixed frame
holding either a CLI command line or a NETCONF-style XML RPC; every request
gets exactly one response frame back.
"""
import argparse
import asyncio
import logging
import os
import signal
import stat
import sys
from typing import Optional

from .config import ConfigError, DaemonConfig
from .dispatcher import Dispatcher, DispatchResult
from .errors import NetdError
from .interpreter.grammar import GrammarEngine
from .interpreter.schema import Command, Target, Verb
from .netconf.bridge import (
    looks_like_rpc,
    operation_to_command,
    parse_envelope,
    reply_data,
    reply_error,
    reply_ok,
)
from .persistence.store import ConfigStore
from .staging.buffer import StagingBuffer
from .staging.manager import StagingManager
from .system import create_backend
from .system.base import InterfaceConfigurator, RouteConfigurator
from .transport import FrameError, read_frame, write_frame
from .utils.audit_log import ChangeTracker, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


class NetdServer:
    """Wires grammar, bridge, dispatcher and transport together."""

    def __init__(
        self,
        config: DaemonConfig,
        interfaces: Optional[InterfaceConfigurator] = None,
        routes: Optional[RouteConfigurator] = None,
    ):
        self.config = config

        if interfaces is None or routes is None:
            backend = create_backend(config.backend, config.memory, config.max_fibs)
            interfaces = interfaces or backend
            routes = routes or backend

        self.engine = GrammarEngine(max_fibs=config.max_fibs)
        self.store = ConfigStore(config.state_file) if config.state_file else None
        self.staging = StagingManager(
            StagingBuffer(config.staging_capacity),
            interfaces,
            routes,
            stop_on_error=config.stop_on_error,
            timeout=config.configurator_timeout,
            tracker=ChangeTracker(source="netd"),
        )
        self.dispatcher = Dispatcher(
            interfaces,
            routes,
            self.staging,
            store=self.store,
            max_fibs=config.max_fibs,
        )
        self._server: Optional[asyncio.AbstractServer] = None

    # === Request handling ===

    async def handle_request(self, text: str) -> str:
        """Answer one request; never raises."""
        if looks_like_rpc(text):
            return await self._handle_rpc(text)
        return await self._handle_cli(text)

    async def _handle_cli(self, text: str) -> str:
        try:
            command = self.engine.parse(text.strip())
            result = await self.dispatcher.dispatch(command)
        except NetdError as e:
            logger.info(f"Request '{text.strip()}' failed: {e.message}")
            return f"Error: {e.message}"
        except Exception:
            logger.exception(f"Unexpected error handling '{text.strip()}'")
            return "Error: internal error"
        return result.message

    async def _handle_rpc(self, text: str) -> str:
        message_id = "1"
        try:
            root, message_id = parse_envelope(text)
            command = operation_to_command(root, self.config.max_fibs)
            result = await self.dispatcher.dispatch(command)
        except NetdError as e:
            logger.info(f"RPC (message-id {message_id}) failed: {e.message}")
            return reply_error(message_id, e.message)
        except Exception:
            logger.exception("Unexpected error handling RPC")
            return reply_error(message_id, "internal error")
        return self._rpc_reply(message_id, command, result)

    @staticmethod
    def _rpc_reply(message_id: str, command: Command, result: DispatchResult) -> str:
        if command.verb != Verb.SHOW:
            return reply_ok(message_id)
        return reply_data(
            message_id,
            interfaces=result.interfaces,
            routes=result.routes,
            fib=result.fib,
            text=result.message if command.target == Target.NONE else None,
        )

    async def handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve requests from one client until it disconnects."""
        logger.debug("Client connected")
        try:
            while True:
                try:
                    request = await read_frame(reader, self.config.max_request_size)
                except FrameError as e:
                    logger.warning(f"Dropping client: {e.message}")
                    break
                if request is None:
                    break
                response = await self.handle_request(request)
                await write_frame(writer, response)
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Client went away")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass
            logger.debug("Client disconnected")

    # === Start-up replay ===

    async def load_saved(self) -> bool:
        """Stage and commit the saved configuration.

        Returns:
            True if everything applied (or nothing was saved)
        """
        if self.store is None:
            logger.warning("--load given but no state_file configured")
            return False

        try:
            commands = self.store.load()
        except NetdError as e:
            logger.error(f"Cannot load {self.store.path}: {e.message}")
            return False

        if not commands:
            logger.info("No saved configuration to load")
            return True

        try:
            for command in commands:
                await self.dispatcher.dispatch(command)
            result = await self.dispatcher.dispatch(Command(Verb.COMMIT))
        except NetdError as e:
            async with self.dispatcher.lock:
                dropped = self.staging.discard()
            logger.error(
                f"Saved configuration did not apply cleanly: {e.message} "
                f"({dropped} staged change(s) dropped)"
            )
            return False

        logger.info(result.message)
        return True

    # === Socket lifecycle ===

    def _remove_stale_socket(self) -> None:
        path = self.config.socket_path
        try:
            mode = os.stat(path).st_mode
        except FileNotFoundError:
            return
        if not stat.S_ISSOCK(mode):
            raise ConfigError(f"{path} exists and is not a socket")
        os.unlink(path)
        logger.debug(f"Removed stale socket {path}")

    async def start(self) -> None:
        self._remove_stale_socket()
        self._server = await asyncio.start_unix_server(
            self.handle_connection, path=self.config.socket_path
        )
        os.chmod(self.config.socket_path, self.config.socket_mode)
        logger.info(f"netd listening on {self.config.socket_path} (backend: {self.config.backend})")

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        try:
            os.unlink(self.config.socket_path)
        except FileNotFoundError:
            pass
        logger.info("netd stopped")


async def serve(config: DaemonConfig, load: bool = False) -> None:
    """Run the daemon until SIGINT/SIGTERM."""
    server = NetdServer(config)
    if load:
        await server.load_saved()
    await server.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        await server.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netd",
        description="Network configuration daemon",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run against the live FreeBSD network stack
    netd

    # Simulated stack on a private socket
    netd --backend memory --socket /tmp/netd.sock

    # Re-apply the last saved configuration at start
    netd --load

Environment:
    NETD_SOCKET, NETD_BACKEND, NETD_STAGING_CAPACITY, NETD_MAX_FIBS,
    NETD_STATE_FILE, NETD_LOG_LEVEL, NETD_LOG_FILE
""",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--socket", help="UNIX socket path (default: /var/run/netd.sock)")
    parser.add_argument("--backend", choices=["memory", "freebsd"], help="Network backend")
    parser.add_argument(
        "--load",
        action="store_true",
        help="Stage and commit the saved configuration at start",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the netd daemon."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = DaemonConfig.load(args.config)
        if args.socket:
            config.socket_path = args.socket
        if args.backend:
            config.backend = args.backend
        config.validate()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    audit_file = setup_audit_logging(config.audit_log_dir)
    logger.info(f"Audit log: {audit_file}")

    try:
        asyncio.run(serve(config, load=args.load))
    except KeyboardInterrupt:
        pass
    except (ConfigError, OSError) as e:
        logger.error(f"netd failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
