"""Bounded retry for writes rejected because the remote file is locked.

``start_locked_write`` runs the write on a daemon thread, retrying every
``interval`` seconds while the service reports a lock, for at most
``ceiling / interval`` attempts (60 with the defaults). The returned
:class:`LockedWriteTask` is the completion signal: callers may ignore it
(fire-and-forget upload) or ``wait()`` on it. ``cancel()`` stops the loop at
the next attempt boundary; the thread always terminates on its own.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import ConflictError, TransportError
from .settings import SyncSettings

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.5
DEFAULT_CEILING = 30.0

Write = Callable[[], Any]


@dataclass(frozen=True)
class LockRetryPolicy:
    interval: float = DEFAULT_INTERVAL
    ceiling: float = DEFAULT_CEILING
    attempts: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "LockRetryPolicy":
        return cls(interval=settings.lock_retry_interval, ceiling=settings.lock_retry_ceiling)

    @property
    def max_attempts(self) -> int:
        if self.attempts is not None:
            return max(1, self.attempts)
        if self.interval <= 0:
            return 1
        return max(1, int(round(self.ceiling / self.interval)))


class LockedWriteTask:
    """Background write that keeps retrying while the resource is locked."""

    def __init__(
        self,
        write: Write,
        policy: Optional[LockRetryPolicy] = None,
        *,
        log: Optional[logging.Logger] = None,
        name: str = "locked-write",
    ) -> None:
        self._write = write
        self._policy = policy or LockRetryPolicy()
        self._log = log or logger
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.attempts = 0
        self.succeeded = False
        self.result: Any = None
        self.error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> "LockedWriteTask":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the task finished; ``False`` if ``timeout`` elapsed first."""

        return self._done.wait(timeout)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def raise_for_outcome(self) -> Any:
        """Return the write result or raise the error that ended the task."""

        if not self.done:
            raise RuntimeError("Locked write is still running")
        if self.succeeded:
            return self.result
        if self.error is not None:
            raise self.error
        raise ConflictError("Locked write was cancelled before it succeeded")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run(self) -> None:
        limit = self._policy.max_attempts
        try:
            for attempt in range(1, limit + 1):
                if self._cancel.is_set():
                    self._log.info("Locked write cancelled after %d attempt(s)", self.attempts)
                    return
                self.attempts = attempt
                try:
                    self.result = self._write()
                except ConflictError as exc:
                    self.error = exc
                    self._log.info("Current file is locked. Retrying... (%d/%d)", attempt, limit)
                    if attempt < limit:
                        self._cancel.wait(self._policy.interval)
                    continue
                except Exception as exc:  # surfaced through ``error``
                    self.error = exc
                    self._log.debug("Locked write failed: %s", exc)
                    return
                self.error = None
                self.succeeded = True
                return
            self._log.warning("File still locked after %d attempts; giving up", limit)
        finally:
            self._done.set()


def start_locked_write(
    write: Write,
    policy: Optional[LockRetryPolicy] = None,
    *,
    log: Optional[logging.Logger] = None,
) -> LockedWriteTask:
    """Start ``write`` in the background and return its task handle."""

    return LockedWriteTask(write, policy, log=log).start()


def retry_locked_write(
    write: Write,
    policy: Optional[LockRetryPolicy] = None,
    *,
    log: Optional[logging.Logger] = None,
) -> Any:
    """Run ``write`` with lock retry and wait for the outcome."""

    task = start_locked_write(write, policy, log=log)
    task.wait()
    return task.raise_for_outcome()


def rewrite_after_unlock(
    write: Write,
    delete_locked: Callable[[], Any],
    *,
    log: Optional[logging.Logger] = None,
) -> Any:
    """Write once; on a lock, delete the locked resource and write once more.

    ``delete_locked`` may raise or return ``False`` to signal that the lock
    could not be cleared, in which case the first conflict is raised.
    """

    log = log or logger
    try:
        return write()
    except ConflictError as conflict:
        log.info("Resource is locked; deleting it before writing again")
        try:
            cleared = delete_locked()
        except TransportError as exc:
            log.debug("Error deleting the locked resource: %s", exc)
            raise conflict from exc
        if cleared is False:
            raise conflict
    return write()


__all__ = [
    "DEFAULT_CEILING",
    "DEFAULT_INTERVAL",
    "LockRetryPolicy",
    "LockedWriteTask",
    "retry_locked_write",
    "rewrite_after_unlock",
    "start_locked_write",
]
