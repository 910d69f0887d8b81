"""
Sequence allocation for business keys and row ids.

Allocators are injected into the identity and versioning services instead of
being reached through process-global state. Every allocator hands out strictly
increasing values per sequence name; gaps are allowed, duplicates are not.
"""

from __future__ import annotations

import itertools
import threading
from typing import Optional, Protocol

from sqlalchemy import Sequence, select, update
from sqlalchemy.exc import IntegrityError

from rtstore.models import SequenceCounter


class SequenceAllocator(Protocol):
    def next_value(self, db, name: str) -> int:
        ...


class PostgresSequenceAllocator:
    """Native sequences; values are never rolled back with the transaction."""

    def __init__(self) -> None:
        self._sequences: dict[str, Sequence] = {}

    def _sequence(self, name: str) -> Sequence:
        seq = self._sequences.get(name)
        if seq is None:
            seq = Sequence(name)
            self._sequences[name] = seq
        return seq

    def next_value(self, db, name: str) -> int:
        return int(db.scalar(select(self._sequence(name).next_value())))


class TableSequenceAllocator:
    """Counter rows in rt_sequence_counter, advanced inside the caller's transaction.

    Unlike native sequences the counter rolls back with an aborted
    transaction, so a value may be issued again. It is only ever committed
    once, together with the row that uses it.
    """

    def next_value(self, db, name: str) -> int:
        result = db.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == name)
            .values(value=SequenceCounter.value + 1)
        )
        if result.rowcount == 0:
            try:
                with db.begin_nested():
                    db.add(SequenceCounter(name=name, value=1))
                return 1
            except IntegrityError:
                # Another transaction created the counter first.
                db.execute(
                    update(SequenceCounter)
                    .where(SequenceCounter.name == name)
                    .values(value=SequenceCounter.value + 1)
                )
        return int(
            db.scalar(select(SequenceCounter.value).where(SequenceCounter.name == name))
        )


class InMemoryAllocator:
    """Thread-safe process-local counters."""

    def __init__(self, start: int = 1, starts: Optional[dict[str, int]] = None) -> None:
        self._start = start
        self._starts = dict(starts or {})
        self._counters: dict[str, itertools.count] = {}
        self._lock = threading.Lock()

    def next_value(self, db, name: str) -> int:
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = itertools.count(self._starts.get(name, self._start))
                self._counters[name] = counter
            return next(counter)


def default_allocator(engine) -> SequenceAllocator:
    if engine.dialect.name == "postgresql":
        return PostgresSequenceAllocator()
    return TableSequenceAllocator()


__all__ = [
    "SequenceAllocator",
    "PostgresSequenceAllocator",
    "TableSequenceAllocator",
    "InMemoryAllocator",
    "default_allocator",
]
