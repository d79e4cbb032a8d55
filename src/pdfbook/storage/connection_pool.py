"""Bounded pool of SQLite handles shared by every service.

The pool hands out at most ``max_connections`` handles at a time. Callers
that find it exhausted wait on a condition variable and are woken when a
handle is released (or the pool is destroyed), rather than polling.

Usage:
    pool = ConnectionPool(lambda: open_db(path), PoolConfig(max_connections=3))
    with pool.connection() as conn:
        conn.execute("SELECT 1")
    pool.destroy()
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, NamedTuple, TypeVar

from pdfbook.core.config import PoolConfig
from pdfbook.core.errors import PoolClosedError, PoolTimeoutError

log = logging.getLogger(__name__)

__all__ = ["ConnectionPool", "PoolStats"]

T = TypeVar("T")


class PoolStats(NamedTuple):
    total: int
    active: int
    idle: int
    max: int


@dataclass
class _Slot:
    conn: sqlite3.Connection
    in_use: bool
    last_used: float


class ConnectionPool:
    """Thread-safe bounded pool of ``sqlite3.Connection`` objects."""

    def __init__(
        self,
        factory: Callable[[], sqlite3.Connection],
        config: PoolConfig | None = None,
        *,
        seed: sqlite3.Connection | None = None,
    ) -> None:
        self.config = config or PoolConfig()
        self._factory = factory
        self._cond = threading.Condition()
        self._slots: dict[int, _Slot] = {}
        self._opening = 0
        self._closed = False
        self._sweeper: threading.Thread | None = None
        self._stop_sweeper = threading.Event()

        if seed is not None:
            self._slots[id(seed)] = _Slot(seed, False, time.monotonic())

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #
    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self) -> sqlite3.Connection:
        """Return a handle, opening one if under the limit, else wait.

        Raises:
            PoolTimeoutError: nothing became available within ``acquire_timeout``
            PoolClosedError: the pool was destroyed before or during the wait
        """

        deadline = time.monotonic() + self.config.acquire_timeout
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError("Connection pool has been destroyed")
                for slot in self._slots.values():
                    if not slot.in_use:
                        slot.in_use = True
                        slot.last_used = time.monotonic()
                        log.debug("Reusing pooled connection (%d total)", len(self._slots))
                        return slot.conn
                if len(self._slots) + self._opening < self.config.max_connections:
                    self._opening += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    log.warning(
                        "Timed out after %.2fs waiting for a connection (max=%d)",
                        self.config.acquire_timeout,
                        self.config.max_connections,
                    )
                    raise PoolTimeoutError(
                        f"No connection available within {self.config.acquire_timeout}s"
                    )
                wait_for = remaining
                if self.config.retry_interval > 0:
                    wait_for = min(remaining, self.config.retry_interval)
                self._cond.wait(wait_for)

        # Opening a handle can block on disk; do it outside the lock.
        try:
            conn = self._factory()
        except BaseException:
            with self._cond:
                self._opening -= 1
                self._cond.notify()
            raise

        with self._cond:
            self._opening -= 1
            if self._closed:
                conn.close()
                self._cond.notify_all()
                raise PoolClosedError("Connection pool has been destroyed")
            self._slots[id(conn)] = _Slot(conn, True, time.monotonic())
            log.debug("Opened pooled connection (%d total)", len(self._slots))
        return conn

    def release(self, conn: sqlite3.Connection) -> None:
        """Return ``conn`` to the pool; unknown handles are ignored."""

        with self._cond:
            slot = self._slots.get(id(conn))
            if slot is None or slot.conn is not conn or not slot.in_use:
                return
            broken = False
            if conn.in_transaction:
                log.warning("Rolling back transaction left open on a released connection")
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error:
                    log.error("Rollback failed; discarding connection", exc_info=True)
                    broken = True
            if broken or self._closed:
                self._discard(slot)
                self._cond.notify_all()
                return
            slot.in_use = False
            slot.last_used = time.monotonic()
            self._cond.notify()

    def with_connection(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` with a pooled handle; the handle is always released."""

        conn = self.acquire()
        try:
            return fn(conn)
        finally:
            self.release(conn)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def get_stats(self) -> PoolStats:
        with self._cond:
            active = sum(1 for slot in self._slots.values() if slot.in_use)
            total = len(self._slots)
        return PoolStats(
            total=total, active=active, idle=total - active, max=self.config.max_connections
        )

    def health_check(self) -> tuple[int, int]:
        """Run ``SELECT 1`` on every idle handle.

        Handles that fail are closed and dropped.

        Returns:
            ``(healthy, failed)`` counts
        """

        healthy = failed = 0
        with self._cond:
            for slot in [s for s in self._slots.values() if not s.in_use]:
                try:
                    slot.conn.execute("SELECT 1").fetchone()
                    healthy += 1
                except sqlite3.Error:
                    log.warning("Dropping connection that failed health check", exc_info=True)
                    self._discard(slot)
                    failed += 1
            if failed:
                self._cond.notify_all()
        return healthy, failed

    def cleanup(self, max_idle_age: float | None = None) -> int:
        """Close idle handles unused for longer than ``max_idle_age`` seconds."""

        threshold = self.config.idle_timeout if max_idle_age is None else max_idle_age
        now = time.monotonic()
        with self._cond:
            stale = [
                slot
                for slot in self._slots.values()
                if not slot.in_use and now - slot.last_used > threshold
            ]
            for slot in stale:
                self._discard(slot)
            if stale:
                self._cond.notify_all()
        if stale:
            log.info("Closed %d idle connection(s)", len(stale))
        return len(stale)

    def start_idle_sweeper(self, interval: float | None = None) -> None:
        """Call :meth:`cleanup` every ``interval`` seconds until destroyed."""

        if self._sweeper is not None and self._sweeper.is_alive():
            return
        period = interval if interval is not None else max(self.config.idle_timeout / 2, 1.0)

        def _sweep() -> None:
            while not self._stop_sweeper.wait(period):
                if self._closed:
                    break
                try:
                    self.cleanup()
                except Exception:  # pragma: no cover - keep the sweeper alive
                    log.exception("Idle connection sweep failed")

        self._sweeper = threading.Thread(target=_sweep, name="PoolSweeper", daemon=True)
        self._sweeper.start()

    def destroy(self) -> None:
        """Close the pool.

        Waiters are woken and fail with :class:`PoolClosedError`. Active
        handles get ``destroy_timeout`` seconds to come back before every
        handle is force-closed. Calling it again is a no-op.
        """

        with self._cond:
            if not self._closed:
                self._closed = True
                self._cond.notify_all()
                deadline = time.monotonic() + self.config.destroy_timeout
                while any(slot.in_use for slot in self._slots.values()):
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        log.warning(
                            "Force-closing %d active connection(s)",
                            sum(1 for slot in self._slots.values() if slot.in_use),
                        )
                        break
                    self._cond.wait(remaining)
                for slot in list(self._slots.values()):
                    self._discard(slot)
                log.info("Connection pool destroyed")

        self._stop_sweeper.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join(timeout=5)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #
    def _discard(self, slot: _Slot) -> None:
        """Close and forget ``slot``; caller holds the lock."""

        self._slots.pop(id(slot.conn), None)
        try:
            slot.conn.close()
        except sqlite3.Error:
            log.debug("Error closing pooled connection", exc_info=True)

    # ------------------------------------------------------------------ #
    # Context manager helpers                                            #
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()
