#!/usr/bin/env python3
"""net: command-line client for netd.

Usage:
    net [--socket PATH] [--xml] [command ...]

With a command, sends it and prints the response (one-shot mode). Without
one, starts an interactive session with history and grammar-driven tab
completion.
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory

from .config import SOCKET_PATH
from .errors import NetdError
from .interpreter.grammar import GrammarEngine
from .interpreter.values import DEFAULT_MAX_FIBS
from .netconf.bridge import cli_to_rpc, parse_reply
from .transport import DEFAULT_MAX_REQUEST_SIZE, FrameError, read_frame, write_frame
from .utils.connection import with_retry
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

PROMPT = "net> "
HISTORY_FILE = Path.home() / ".net_history"
EXIT_COMMANDS = ("quit", "exit")

# Responses can carry whole routing tables
MAX_RESPONSE_SIZE = 16 * 1024 * 1024


class NetdClient:
    """One connection to the daemon socket."""

    def __init__(self, socket_path: str = SOCKET_PATH):
        self.socket_path = socket_path
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @with_retry(max_attempts=3)
    async def connect(self) -> None:
        self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
        logger.debug(f"Connected to {self.socket_path}")

    async def request(self, text: str) -> str:
        """Send one request and wait for its response.

        Never retried: a repeated set or commit is not idempotent.
        """
        if self._writer is None:
            await self.connect()
        if len(text.encode("utf-8")) > DEFAULT_MAX_REQUEST_SIZE:
            raise FrameError(f"request exceeds {DEFAULT_MAX_REQUEST_SIZE} bytes")

        await write_frame(self._writer, text)
        response = await read_frame(self._reader, MAX_RESPONSE_SIZE)
        if response is None:
            raise FrameError("daemon closed the connection")
        return response

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass
            self._writer = self._reader = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class GrammarCompleter(Completer):
    """Tab completion driven by the same grammar the daemon parses with."""

    def __init__(self, engine: GrammarEngine):
        self.engine = engine

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        if not text or text[-1].isspace():
            word = ""
        else:
            word = text.split()[-1]

        for candidate in sorted(self.engine.complete(text)):
            if candidate.startswith("<"):
                # Placeholder: show what is expected, insert nothing
                yield Completion("", start_position=0, display=candidate, display_meta="argument")
            else:
                yield Completion(candidate, start_position=-len(word))


async def execute_line(
    client: NetdClient,
    line: str,
    engine: GrammarEngine,
    xml: bool = False,
) -> tuple[bool, str]:
    """
    Send one command line.

    Args:
        client: Connected client
        line: Command text
        engine: Grammar used to build the RPC in XML mode
        xml: Translate to a NETCONF-style RPC before sending

    Returns:
        Tuple of (success, text to print)
    """
    if line.strip() == "?":
        line = "help"

    if not xml:
        response = await client.request(line)
        return not response.startswith("Error:"), response.rstrip("\n")

    try:
        command = engine.parse(line)
    except NetdError as e:
        return False, f"Error: {e.message}"

    response = await client.request(cli_to_rpc(command))
    ok, text = parse_reply(response)
    return ok, text.rstrip("\n") if ok else f"Error: {text}"


async def interactive(client: NetdClient, engine: GrammarEngine, xml: bool = False) -> int:
    """Read-eval-print loop until quit/exit or EOF."""
    session = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        completer=GrammarCompleter(engine),
    )

    while True:
        try:
            line = await session.prompt_async(PROMPT)
        except KeyboardInterrupt:
            continue
        except EOFError:
            print()
            break

        line = line.strip()
        if not line:
            continue
        if line in EXIT_COMMANDS:
            break

        try:
            _, text = await execute_line(client, line, engine, xml=xml)
        except (FrameError, ConnectionError) as e:
            print(f"Error: connection to netd lost: {e}")
            return 1
        print(text)

    return 0


async def run(args: argparse.Namespace) -> int:
    max_fibs = int(os.environ.get("NETD_MAX_FIBS", DEFAULT_MAX_FIBS))
    engine = GrammarEngine(max_fibs=max_fibs)
    client = NetdClient(args.socket)

    try:
        await client.connect()
    except OSError as e:
        print(f"Error: cannot connect to netd at {args.socket}: {e}", file=sys.stderr)
        return 1

    try:
        if args.command:
            ok, text = await execute_line(client, " ".join(args.command), engine, xml=args.xml)
            print(text)
            return 0 if ok else 1
        return await interactive(client, engine, xml=args.xml)
    except (FrameError, ConnectionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await client.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the net client."""
    parser = argparse.ArgumentParser(prog="net", description="netd command-line client")
    parser.add_argument(
        "--socket",
        default=os.environ.get("NETD_SOCKET", SOCKET_PATH),
        help=f"Daemon socket (default: {SOCKET_PATH})",
    )
    parser.add_argument(
        "--xml",
        action="store_true",
        help="Send commands as NETCONF-style XML RPCs",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to run (one-shot mode)")
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_to_file=False)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
