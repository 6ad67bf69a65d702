"""
Action executor.

Drives each matched item through its origin's ordered fallback methods:

    Pending -> AttemptingMethodK -> (Verified | AttemptingMethodK+1) -> Terminal

Only a re-queried, verified state change counts as success. Independent items
run on a bounded thread pool; actions on the same identifier never overlap
and each external tool (winget, Chocolatey, DISM, Windows Installer) runs one
invocation at a time.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable, Iterator, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, nullcontext
from typing import TYPE_CHECKING, ContextManager

from wintidy.core.config import TimeoutConfig
from wintidy.core.errors import MethodFailedError
from wintidy.core.logging import get_logger
from wintidy.core.models import (
    ActionMode,
    ActionOutcome,
    CanonicalIdentifierSet,
    InventoryItem,
    MatchRecord,
    MethodAttempt,
    Origin,
    OutcomeStatus,
)
from wintidy.reconcile.methods import (
    METHOD_TABLE,
    PRESENCE_PROBES,
    ActionMethod,
    PresenceProbe,
)

if TYPE_CHECKING:
    from wintidy.core.job import JobContext
    from wintidy.platform.base import CommandResult, CommandRunner

logger = get_logger(__name__)

MethodTable = Mapping[ActionMode, Mapping[Origin, Sequence[ActionMethod]]]
ProbeTable = Mapping[Origin, Sequence[PresenceProbe]]


class KeyedLocks:
    """Lazily created named locks, acquired in sorted order."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[None]:
        locks = [self.get(key) for key in sorted(set(keys))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


def _converged(present: bool | None, mode: ActionMode) -> bool:
    if present is None:
        return False
    return present if mode is ActionMode.INSTALL else not present


def _describe_failure(result: CommandResult) -> str:
    if result.timed_out:
        return result.stderr
    detail = (result.stderr or result.stdout).strip().splitlines()
    message = detail[-1] if detail else ""
    return f"exit code {result.returncode}" + (f": {message[:200]}" if message else "")


class ActionExecutor:
    """Applies removal/installation methods with verification and fallback."""

    def __init__(
        self,
        runner: CommandRunner,
        timeouts: TimeoutConfig | None = None,
        *,
        max_workers: int = 8,
        dry_run: bool = False,
        verify_first: bool = True,
        methods: MethodTable | None = None,
        probes: ProbeTable | None = None,
        context: JobContext | None = None,
    ) -> None:
        self.runner = runner
        self.timeouts = timeouts or TimeoutConfig()
        self.max_workers = max(1, max_workers)
        self.dry_run = dry_run
        self.verify_first = verify_first
        self.methods = METHOD_TABLE if methods is None else methods
        self.probes = PRESENCE_PROBES if probes is None else probes
        self.context = context
        self._identifier_locks = KeyedLocks()
        self._tool_locks = KeyedLocks()

    @property
    def cancelled(self) -> bool:
        return self.context is not None and self.context.is_cancelled

    # ==================== Batch ====================

    def execute_all(
        self,
        matches: Iterable[MatchRecord],
        mode: ActionMode,
    ) -> list[ActionOutcome]:
        """Converge every distinct matched item; one item's failure never stops the rest."""
        unique: dict[str, MatchRecord] = {}
        for record in matches:
            unique.setdefault(record.item.key, record)
        records = list(unique.values())
        if not records:
            return []

        if self.context is not None:
            self.context.update_progress(current=0, total=len(records), stage=mode.value)

        workers = min(self.max_workers, len(records))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="wintidy-action") as pool:
            futures = [pool.submit(self.execute, record, mode) for record in records]
            outcomes = []
            for record, future in zip(records, futures):
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.error(
                        "Action crashed",
                        item=record.item.display_name,
                        error=str(e),
                    )
                    outcome = ActionOutcome(
                        item=record.item,
                        mode=mode,
                        status=OutcomeStatus.FAILED,
                        error=str(e),
                        pattern=record.pattern,
                    )
                outcomes.append(outcome)
                if self.context is not None:
                    self.context.update_progress(advance=1, message=record.item.display_name)

        return outcomes

    # ==================== Single item ====================

    def execute(self, match: MatchRecord, mode: ActionMode) -> ActionOutcome:
        """Converge one matched item."""
        item = match.item
        keys = [CanonicalIdentifierSet.fold(i) for i in item.identifiers] or [item.key]
        with self._identifier_locks.hold(keys):
            outcome = self._converge(match, mode)

        log = logger.warning if outcome.status is OutcomeStatus.FAILED else logger.info
        log(
            "Action finished",
            item=item.display_name,
            origin=item.origin.value,
            mode=mode.value,
            status=outcome.status.name,
            method=outcome.method_used,
            error=outcome.error,
        )
        return outcome

    def _converge(self, match: MatchRecord, mode: ActionMode) -> ActionOutcome:
        item = match.item

        def outcome(status: OutcomeStatus, **kwargs: object) -> ActionOutcome:
            return ActionOutcome(item=item, mode=mode, status=status, pattern=match.pattern, **kwargs)  # type: ignore[arg-type]

        if self.cancelled:
            return outcome(OutcomeStatus.SKIPPED, error="cancelled")

        methods = self.methods.get(mode, {}).get(item.origin, ())
        if not methods:
            return outcome(
                OutcomeStatus.SKIPPED,
                error=f"no {mode.value} methods for origin {item.origin.value}",
            )

        if self.dry_run:
            return outcome(OutcomeStatus.SKIPPED, method_used="dry-run")

        if self.verify_first and _converged(self.probe(item), mode):
            return outcome(OutcomeStatus.SKIPPED, method_used="already-converged")

        attempts: list[MethodAttempt] = []
        for index, method in enumerate(methods):
            if index > 0 and self.cancelled:
                attempts.append(MethodAttempt(method=method.name, error="cancelled"))
                break

            attempt = self._attempt(method, item, mode)
            attempts.append(attempt)

            if attempt.verified:
                return outcome(OutcomeStatus.SUCCESS, method_used=method.name, attempts=attempts)

        reported = [a for a in attempts if a.reported_success]
        last = attempts[-1]
        if reported:
            return outcome(
                OutcomeStatus.PARTIAL,
                method_used=reported[-1].method,
                error=last.error or "change could not be verified",
                attempts=attempts,
            )
        return outcome(
            OutcomeStatus.FAILED,
            method_used=last.method,
            error=last.error,
            attempts=attempts,
        )

    def _attempt(self, method: ActionMethod, item: InventoryItem, mode: ActionMode) -> MethodAttempt:
        """Run one method, then re-query the item's state."""
        attempt = MethodAttempt(method=method.name)
        start = time.monotonic()

        try:
            command = method.build(item)
            if command is None:
                raise MethodFailedError("not applicable: missing metadata")

            timeout = (
                self.timeouts.long_operation_seconds
                if method.long_running
                else self.timeouts.package_seconds
            )
            with self._tool_lock(method.tool):
                result = self.runner.run_command(command, timeout=timeout)

            attempt.returncode = result.returncode
            attempt.reported_success = result.success
            if not result.success:
                attempt.error = _describe_failure(result)
        except MethodFailedError as e:
            attempt.error = str(e)
            attempt.duration_seconds = time.monotonic() - start
            return attempt
        except Exception as e:
            attempt.error = f"{type(e).__name__}: {e}"

        attempt.verified = _converged(self.probe(item), mode)
        if attempt.reported_success and not attempt.verified:
            attempt.error = "reported success but change not verified"
        attempt.duration_seconds = time.monotonic() - start

        logger.debug(
            "Method attempted",
            item=item.display_name,
            method=method.name,
            returncode=attempt.returncode,
            verified=attempt.verified,
            error=attempt.error,
        )
        return attempt

    def probe(self, item: InventoryItem) -> bool | None:
        """
        Re-query whether the item is present.

        Returns True if any probe sees it, False if at least one probe
        answered and none see it, None if nothing could be queried.
        """
        answered = False
        for probe in self.probes.get(item.origin, ()):
            try:
                command = probe.build(item)
                if command is None:
                    continue
                with self._tool_lock(probe.tool):
                    result = self.runner.run_command(command, timeout=self.timeouts.query_seconds)
                verdict = probe.evaluate(result, item)
            except Exception as e:
                logger.warning(
                    "Presence probe failed",
                    item=item.display_name,
                    probe=probe.name,
                    error=str(e),
                )
                continue

            if verdict is True:
                return True
            if verdict is False:
                answered = True

        return False if answered else None

    def _tool_lock(self, tool: str | None) -> ContextManager[object]:
        if tool is None:
            return nullcontext()
        return self._tool_locks.get(tool)
