"""Reader/writer lock that poisons itself when a writer fails."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from monitor_table.errors import TablePoisonedError

logger = logging.getLogger(__name__)


class ReaderWriterLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so a steady stream of readers cannot
    starve a writer. Not re-entrant: a thread holding either side must not
    acquire again.

    If an exception escapes a write() block the lock is poisoned: the writer
    may have left the protected data half-updated, so every later acquire
    raises TablePoisonedError. There is no way to clear the flag.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def _raise_poisoned(self) -> None:
        raise TablePoisonedError("Table lock is poisoned by an earlier failed write")

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._waiting_writers:
                if self._poisoned:
                    self._raise_poisoned()
                self._cond.wait()
            if self._poisoned:
                self._raise_poisoned()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    if self._poisoned:
                        self._raise_poisoned()
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
                if self._waiting_writers == 0:
                    self._cond.notify_all()
            if self._poisoned:
                self._raise_poisoned()
            self._writer = True

    def release_write(self, poison: bool = False) -> None:
        with self._cond:
            self._writer = False
            if poison:
                self._poisoned = True
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the shared side for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the exclusive side; an escaping exception poisons the lock."""
        self.acquire_write()
        try:
            yield
        except BaseException as e:
            logger.warning("Poisoning table lock after failed write: %s: %s", type(e).__name__, e)
            self.release_write(poison=True)
            raise
        else:
            self.release_write()
