"""Command dispatcher.

Routes each Command to its handler by (verb, target). Read-only queries go
straight to the backends; everything that touches staging or live state runs
under one asyncio.Lock, so stage/commit/discard/delete/save are linearizable
while a long commit never blocks a `show`.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .errors import ApplyError, SemanticError, UnknownTargetError
from .formatting import format_interfaces, format_routes, usage_text
from .interpreter.schema import (
    Command,
    InterfaceConfig,
    InterfaceQuery,
    RouteConfig,
    RouteProtocol,
    RouteQuery,
    Target,
    Verb,
)
from .interpreter.values import DEFAULT_MAX_FIBS
from .persistence.store import ConfigStore, StoredConfig
from .staging.manager import CommitResult, StagingManager, entry_parameters
from .system.base import InterfaceConfigurator, InterfaceInfo, RouteConfigurator, RouteEntry
from .utils.audit_log import ChangeTracker
from .utils.logging_config import timed_section

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """What a command produced.

    `message` is the CLI text; the structured fields let the protocol
    bridge serialize the same result as XML.
    """
    message: str
    interfaces: Optional[list[InterfaceInfo]] = None
    routes: Optional[list[RouteEntry]] = None
    fib: Optional[int] = None
    commit: Optional[CommitResult] = None
    saved: Optional[StoredConfig] = None


Handler = Callable[[Command], Awaitable[DispatchResult]]

# Payload type each handled (verb, target) requires
PAYLOAD_TYPES: dict[tuple[Verb, Target], type] = {
    (Verb.SHOW, Target.INTERFACE): InterfaceQuery,
    (Verb.SHOW, Target.ROUTE): RouteQuery,
    (Verb.SET, Target.INTERFACE): InterfaceConfig,
    (Verb.SET, Target.ROUTE): RouteConfig,
    (Verb.DELETE, Target.ROUTE): RouteConfig,
}


class Dispatcher:
    """Execute Commands against staging and the backends."""

    def __init__(
        self,
        interfaces: InterfaceConfigurator,
        routes: RouteConfigurator,
        staging: StagingManager,
        store: Optional[ConfigStore] = None,
        max_fibs: int = DEFAULT_MAX_FIBS,
        tracker: Optional[ChangeTracker] = None,
    ):
        self.interfaces = interfaces
        self.routes = routes
        self.staging = staging
        self.store = store
        self.max_fibs = max_fibs
        self.tracker = tracker or staging.tracker
        self.lock = asyncio.Lock()

        self._handlers: dict[tuple[Verb, Target], Handler] = {
            (Verb.SHOW, Target.NONE): self._show_help,
            (Verb.SHOW, Target.INTERFACE): self._show_interfaces,
            (Verb.SHOW, Target.ROUTE): self._show_routes,
            (Verb.SET, Target.INTERFACE): self._stage,
            (Verb.SET, Target.ROUTE): self._stage,
            (Verb.DELETE, Target.ROUTE): self._delete_route,
            (Verb.COMMIT, Target.NONE): self._commit,
            (Verb.DISCARD, Target.NONE): self._discard,
            (Verb.SAVE, Target.NONE): self._save,
        }

    async def dispatch(self, command: Command) -> DispatchResult:
        """
        Execute one command.

        Raises:
            UnknownTargetError: No handler for the verb/target combination
            StagingFullError: Staging buffer at capacity
            ApplyError: Commit (or an immediate delete) failed
            SemanticError: Payload does not match the verb/target, or save
                without a configured store
        """
        handler = self._handlers.get((command.verb, command.target))
        if handler is None:
            raise UnknownTargetError(command.verb.value, command.target.value)

        expected = PAYLOAD_TYPES.get((command.verb, command.target))
        if expected is not None and not isinstance(command.payload, expected):
            raise SemanticError(
                f"{command.verb.value} {command.target.value} requires "
                f"{expected.__name__}, got {type(command.payload).__name__}"
            )
        return await handler(command)

    # === Read-only ===

    async def _show_help(self, command: Command) -> DispatchResult:
        return DispatchResult(usage_text())

    async def _show_interfaces(self, command: Command) -> DispatchResult:
        query = command.payload
        interfaces = await self.interfaces.list_interfaces(query.type_filter)
        return DispatchResult(format_interfaces(interfaces), interfaces=interfaces)

    async def _show_routes(self, command: Command) -> DispatchResult:
        query = command.payload
        fib = query.fib if query.fib is not None else await self.routes.current_fib()
        routes = await self.routes.list_routes(fib, query.protocol, query.family)
        return DispatchResult(format_routes(fib, routes), routes=routes, fib=fib)

    # === Mutations (under the lock) ===

    async def _stage(self, command: Command) -> DispatchResult:
        entry = command.payload
        async with self.lock:
            pending = self.staging.stage(entry)
        return DispatchResult(
            f"Staged {entry.describe()} ({pending} pending; 'commit' to apply)"
        )

    async def _delete_route(self, command: Command) -> DispatchResult:
        route = command.route
        async with self.lock:
            fib = route.fib if route.fib is not None else await self.routes.current_fib()

            if route.is_bulk:
                async with timed_section("delete_routes", fib=fib):
                    removed = await self.routes.delete_routes(
                        fib, route.family, route.protocol
                    )
                self.tracker.log_change(
                    operation="delete_routes",
                    parameters=entry_parameters(route),
                    success=True,
                    output=f"{removed} removed",
                )
                noun = "route" if removed == 1 else "routes"
                return DispatchResult(
                    f"Deleted {removed} {route.protocol.value} {noun} from FIB {fib}",
                    fib=fib,
                )

            ok, message = await self.routes.delete_route(route)
            self.tracker.log_change(
                operation="delete_route",
                parameters=entry_parameters(route),
                success=ok,
                output=message if ok else "",
                error=None if ok else message,
            )
        if not ok:
            raise ApplyError(f"Failed to delete route {route.network}: {message}")
        return DispatchResult(f"Deleted route {route.network} from FIB {fib}", fib=fib)

    async def _commit(self, command: Command) -> DispatchResult:
        async with self.lock:
            result = await self.staging.commit()
        if not result.success:
            raise ApplyError(result.summary(), result=result)
        return DispatchResult(result.summary(), commit=result)

    async def _discard(self, command: Command) -> DispatchResult:
        async with self.lock:
            count = self.staging.discard()
        return DispatchResult(f"Discarded {count} pending change(s)")

    async def _save(self, command: Command) -> DispatchResult:
        if self.store is None:
            raise SemanticError("No state file configured; cannot save")

        async with self.lock:
            interfaces = await self.interfaces.list_interfaces()
            routes: list[RouteEntry] = []
            for fib in range(self.max_fibs):
                routes.extend(await self.routes.list_routes(fib, RouteProtocol.STATIC))
            stored = self.store.save(interfaces, routes)

        return DispatchResult(
            f"Configuration saved to {self.store.path} (version {stored.version})",
            saved=stored,
        )
