"""Staging manager: stage, commit and discard pending changes.

Commit semantics:
- The buffer is snapshotted and cleared before anything is applied, so a
  commit never sees entries staged after it started.
- Interfaces are applied before routes, each list in staging order.
- Default policy is continue-on-error: every entry is attempted and each
  failure is collected. With stop_on_error the first failure ends the
  commit and the remaining entries are reported as skipped (and dropped).
- There is no rollback. A partially applied commit stays applied.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..interpreter.schema import InterfaceConfig, RouteConfig, StagedEntry
from ..system.base import InterfaceConfigurator, RouteConfigurator
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from .buffer import StagingBuffer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class ApplyFailure:
    """One staged entry the backend refused (or never answered)."""
    entry: StagedEntry
    message: str

    def __str__(self) -> str:
        return f"{self.entry.describe()}: {self.message}"


@dataclass
class CommitResult:
    """Outcome of one commit."""
    applied: list[StagedEntry] = field(default_factory=list)
    failed: list[ApplyFailure] = field(default_factory=list)
    skipped: list[StagedEntry] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.applied) + len(self.failed) + len(self.skipped)

    def summary(self) -> str:
        if not self.total:
            return "No pending changes to commit"
        if self.success:
            return f"Commit complete: {len(self.applied)} change(s) applied"
        lines = [
            f"Commit failed: {len(self.applied)} applied, "
            f"{len(self.failed)} failed, {len(self.skipped)} skipped"
        ]
        lines.extend(f"  {failure}" for failure in self.failed)
        return "\n".join(lines)


class StagingManager:
    """Owns a StagingBuffer and flushes it to the backends."""

    def __init__(
        self,
        buffer: StagingBuffer,
        interfaces: InterfaceConfigurator,
        routes: RouteConfigurator,
        stop_on_error: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        tracker: Optional[ChangeTracker] = None,
    ):
        self.buffer = buffer
        self.interfaces = interfaces
        self.routes = routes
        self.stop_on_error = stop_on_error
        self.timeout = timeout
        self.tracker = tracker or ChangeTracker()

    @property
    def pending(self) -> list[StagedEntry]:
        return self.buffer.entries()

    def stage(self, entry: StagedEntry) -> int:
        """Add an entry; returns the number of pending changes."""
        self.buffer.add(entry)
        logger.info(f"Staged {entry.describe()} ({len(self.buffer)} pending)")
        return len(self.buffer)

    def discard(self) -> int:
        """Drop every pending change; returns how many were dropped."""
        count = self.buffer.clear()
        logger.info(f"Discarded {count} pending change(s)")
        return count

    async def _apply_one(self, entry: StagedEntry) -> tuple[bool, str]:
        if isinstance(entry, InterfaceConfig):
            operation = "configure_interface"
            call = self.interfaces.configure_interface(entry)
        else:
            operation = "add_route"
            call = self.routes.add_route(entry)

        try:
            ok, message = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            ok, message = False, f"timed out after {self.timeout:.0f}s"
        except Exception as e:
            logger.exception(f"Backend error applying {entry.describe()}")
            ok, message = False, str(e) or type(e).__name__

        self.tracker.log_change(
            operation=operation,
            parameters=entry_parameters(entry),
            success=ok,
            output=message if ok else "",
            error=None if ok else message,
        )
        return ok, message

    async def commit(self) -> CommitResult:
        """Apply every pending change.

        Returns:
            CommitResult listing applied, failed and skipped entries
        """
        interfaces, routes = self.buffer.drain()
        ordered: list[StagedEntry] = [*interfaces, *routes]
        result = CommitResult()

        if not ordered:
            return result

        async with timed_section("commit", entries=len(ordered)):
            for index, entry in enumerate(ordered):
                ok, message = await self._apply_one(entry)
                if ok:
                    result.applied.append(entry)
                    continue

                logger.warning(f"Failed to apply {entry.describe()}: {message}")
                result.failed.append(ApplyFailure(entry, message))
                if self.stop_on_error:
                    result.skipped = ordered[index + 1:]
                    break

        logger.info(result.summary().splitlines()[0])
        return result


def entry_parameters(entry: StagedEntry) -> dict:
    if isinstance(entry, InterfaceConfig):
        params = {
            "interface": entry.name,
            "family": entry.family.value,
            "address": entry.cidr,
            "fib": entry.fib,
        }
        if entry.tunnel_fib is not None:
            params["tunnelfib"] = entry.tunnel_fib
        return params
    return {
        "destination": str(entry.network) if entry.network else None,
        "gateway": str(entry.gateway) if entry.gateway else None,
        "family": entry.family.value if entry.family else None,
        "fib": entry.fib,
        "protocol": entry.protocol.value,
    }
