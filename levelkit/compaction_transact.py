"""Retrying execution of compaction steps that can be reverted."""

from __future__ import annotations

import abc
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from levelkit.batch import CorruptedError

_log = logging.getLogger(__name__)

DEFAULT_BACKOFF_MIN = 1.0
DEFAULT_BACKOFF_MAX = 8.0


class CompactionExiting(Exception):
    """Raised when a compaction step is abandoned and must not be retried."""

    def __init__(self, message: str = "leveldb: compaction transact exiting") -> None:
        super().__init__(message)


@dataclass
class TransactCounter:
    """Progress counter advanced by a compaction step while it runs."""

    value: int = 0

    def incr(self) -> None:
        """Record one more unit of progress."""
        self.value += 1


class CompactionTransact(abc.ABC):
    """A compaction step that may fail, be retried, or be reverted."""

    @abc.abstractmethod
    def run(self, counter: TransactCounter) -> None:
        """Execute the step, raising on failure and advancing ``counter`` on progress."""

    @abc.abstractmethod
    def revert(self) -> None:
        """Undo whatever the step has done so far."""


@dataclass
class FuncTransact(CompactionTransact):
    """A compaction step made of a run function and an optional revert function."""

    run_func: Callable[[TransactCounter], None]
    revert_func: Callable[[], None] | None = None

    def run(self, counter: TransactCounter) -> None:
        self.run_func(counter)

    def revert(self) -> None:
        if self.revert_func is not None:
            self.revert_func()


def _default_is_corrupted(err: BaseException) -> bool:
    return isinstance(err, CorruptedError)


class TransactRunner:
    """Runs compaction steps until they succeed, backing off between failures.

    Each attempt's outcome (None on success, the exception on failure) is
    passed to ``set_error``. A step is abandoned, reverted and
    :class:`CompactionExiting` raised when the runner is closed, when the
    error is a corruption, or when ``persistent_error`` reports an error
    after a failed attempt. Unless backoff is disabled, the runner waits
    ``backoff_min`` after a failure that made progress and ``backoff_max``
    after further failures without progress. ``wait`` is called with the
    delay and returns True if the runner was closed meanwhile.
    """

    def __init__(
        self,
        *,
        disable_backoff: bool = False,
        backoff_min: float = DEFAULT_BACKOFF_MIN,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        set_error: Callable[[BaseException | None], None] | None = None,
        persistent_error: Callable[[], BaseException | None] | None = None,
        is_corrupted: Callable[[BaseException], bool] = _default_is_corrupted,
        wait: Callable[[float], bool] | None = None,
    ) -> None:
        self._closed = threading.Event()
        self._disable_backoff = disable_backoff
        self._backoff_min = backoff_min
        self._backoff_max = backoff_max
        self._set_error = set_error
        self._persistent_error = persistent_error
        self._is_corrupted = is_corrupted
        self._wait = wait if wait is not None else self._closed.wait

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has been called."""
        return self._closed.is_set()

    def close(self) -> None:
        """Make running and future steps exit instead of retrying."""
        self._closed.set()

    def _exit(self, name: str, reason: str = "") -> None:
        _log.info("%s exiting%s", name, f" ({reason})" if reason else "")
        raise CompactionExiting()

    def run(self, name: str, transact: CompactionTransact) -> None:
        """Run ``transact`` until it succeeds; revert it if it is abandoned."""
        try:
            self._run(name, transact)
        except CompactionExiting:
            try:
                transact.revert()
            except Exception as err:  # noqa: BLE001 - reported, exit proceeds
                _log.error("%s revert error %r", name, err)
            raise

    def _run(self, name: str, transact: CompactionTransact) -> None:
        backoff = self._backoff_min
        last_count = 0
        for attempt in itertools.count():
            if self.closed:
                self._exit(name)
            elif attempt > 0:
                _log.info("%s retrying N·%d", name, attempt)

            counter = TransactCounter()
            err: Exception | None = None
            try:
                transact.run(counter)
            except CompactionExiting:
                raise
            except Exception as exc:  # noqa: BLE001 - every failure is retried
                err = exc
                _log.warning("%s error I·%d %r", name, counter.value, err)

            if self._set_error is not None:
                self._set_error(err)
            if self.closed:
                self._exit(name)
            if err is not None and self._persistent_error is not None:
                perr = self._persistent_error()
                if perr is not None:
                    self._exit(name, f"persistent error {perr!r}")

            if err is None:
                return
            if self._is_corrupted(err):
                self._exit(name, "corruption detected")

            if not self._disable_backoff:
                if counter.value > last_count:
                    backoff = self._backoff_min
                    last_count = counter.value
                delay = backoff
                # The delay jumps straight to the maximum after one wait.
                backoff = self._backoff_max
                if self._wait(delay):
                    self._exit(name)

    def run_func(
        self,
        name: str,
        run: Callable[[TransactCounter], None],
        revert: Callable[[], None] | None = None,
    ) -> None:
        """Run a step given as functions; see :meth:`run`."""
        self.run(name, FuncTransact(run, revert))