"""
Parallel, cancellable duplicate scan with streamed results.

Candidate pairs are cut into batches and scored on a ThreadPoolExecutor. At
most one batch per worker is in flight, so a cancel request stops new work
within one batch. Matches are merged into a lock-guarded union-find that also
counts, per component, how many candidate pairs touching it are still
unscored. A group is emitted once that count reaches zero, because it can no
longer grow.

All callback invocations come from the coordinator thread and go through one
lock, so callbacks never run concurrently. Every scan ends with exactly one
terminal event: COMPLETED, CANCELLED or FAILED.
"""

from __future__ import annotations

import concurrent.futures
import itertools
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from .blocking import candidate_degrees, candidate_pairs
from .grouping import UnionFind, validate_entries
from .matching import are_duplicates
from .models import (
    CatalogEntry,
    DuplicateGroup,
    MatchConfig,
    ScanEvent,
    ScanStats,
    ScanStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
WORKER_NAME_PREFIX = "dupe-scan-worker"
COORDINATOR_NAME = "dupe-scan-coordinator"

ScanCallback = Callable[[ScanEvent], None]


def _batched(pairs: Iterator[Tuple[int, int]], size: int) -> Iterator[List[Tuple[int, int]]]:
    while True:
        batch = list(itertools.islice(pairs, size))
        if not batch:
            return
        yield batch


class _ComponentTracker(UnionFind):
    """Union-find that knows when a component is finished."""

    def __init__(self, pending: Sequence[int]):
        super().__init__(len(pending))
        self.pending = list(pending)
        self.members = {i: [i] for i in range(len(pending))}
        self.emitted: set[int] = set()
        self.lock = threading.Lock()

    def union(self, a: int, b: int) -> int:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        root = super().union(a, b)
        other = rb if root == ra else ra
        self.pending[root] += self.pending[other]
        self.members[root].extend(self.members.pop(other))
        return root

    def record(self, results: Iterable[Tuple[int, int, bool]]) -> List[List[int]]:
        """Apply scored pairs and return the components that just became final."""
        with self.lock:
            touched = set()
            for i, j, matched in results:
                if matched:
                    root = self.union(i, j)
                    self.pending[root] -= 2
                    touched.add(root)
                else:
                    for item in (i, j):
                        root = self.find(item)
                        self.pending[root] -= 1
                        touched.add(root)
            finished = []
            for root in {self.find(r) for r in touched}:
                if self.pending[root] == 0 and self.size[root] > 1 and root not in self.emitted:
                    self.emitted.add(root)
                    finished.append(sorted(self.members[root]))
            return finished


class DuplicateScanner:
    """Runs one duplicate scan in the background and reports through ``callback``."""

    def __init__(
        self,
        entries: Iterable[CatalogEntry],
        config: MatchConfig,
        callback: ScanCallback,
        max_workers: Optional[int] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        exhaustive: bool = False,
    ):
        if callback is None:
            raise TypeError("callback is required")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.entries = validate_entries(entries)
        self.config = config
        self.callback = callback
        self.max_workers = max_workers or max(1, os.cpu_count() or 1)
        self.batch_size = batch_size
        self.exhaustive = exhaustive
        self.stats = ScanStats()
        self.status: Optional[ScanStatus] = None
        self._cancel = threading.Event()
        self._sink_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "DuplicateScanner":
        if self._thread is not None:
            raise RuntimeError("scan already started")
        self._thread = threading.Thread(target=self._run, name=COORDINATOR_NAME, daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        """Ask the scan to stop; in-flight batches finish, no new ones start."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> Optional[ScanStatus]:
        """Block until the terminal event has been delivered, or ``timeout`` passes."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.status

    def shutdown(self) -> Optional[ScanStatus]:
        self.cancel()
        return self.wait()

    def __enter__(self) -> "DuplicateScanner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _emit(self, event: ScanEvent) -> None:
        with self._sink_lock:
            self.callback(event)

    def _run(self) -> None:
        status, error = ScanStatus.COMPLETED, None
        try:
            self._scan()
        except Exception as e:
            logger.exception("Duplicate scan failed")
            status, error = ScanStatus.FAILED, e
        if status is ScanStatus.COMPLETED and self._cancel.is_set():
            status = ScanStatus.CANCELLED
        logger.info(
            f"Scan {status.value}: {self.stats.pairs_compared}/{self.stats.pairs_total} pairs, "
            f"{self.stats.groups_found} groups"
        )
        self.status = status
        try:
            self._emit(ScanEvent(status=status, stats=self.stats, error=error))
        except Exception:
            logger.exception("Scan callback raised on the terminal event")

    def _score_batch(self, tracker: _ComponentTracker, batch: List[Tuple[int, int]]):
        if self._cancel.is_set():
            return 0, []
        entries, config = self.entries, self.config
        results = [(i, j, are_duplicates(entries[i], entries[j], config)) for i, j in batch]
        return len(batch), tracker.record(results)

    def _publish(self, members: List[int]) -> None:
        self.stats.groups_found += 1
        group = DuplicateGroup(
            group_id=self.stats.groups_found,
            entries=tuple(self.entries[i] for i in members),
        )
        self._emit(ScanEvent(status=ScanStatus.GROUP, stats=self.stats, group=group))

    def _scan(self) -> None:
        pending = candidate_degrees(
            self.entries, self.config, self.exhaustive, should_stop=self._cancel.is_set
        )
        if pending is None:
            return
        self.stats.pairs_total = sum(pending) // 2
        tracker = _ComponentTracker(pending)
        batches = _batched(
            candidate_pairs(self.entries, self.config, self.exhaustive), self.batch_size
        )
        in_flight = set()
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=WORKER_NAME_PREFIX
        ) as executor:
            try:
                while True:
                    while len(in_flight) < self.max_workers and not self._cancel.is_set():
                        batch = next(batches, None)
                        if batch is None:
                            break
                        in_flight.add(executor.submit(self._score_batch, tracker, batch))
                    if not in_flight:
                        break
                    done, in_flight = concurrent.futures.wait(
                        in_flight, return_when=concurrent.futures.FIRST_COMPLETED
                    )
                    for future in done:
                        compared, finished = future.result()
                        self.stats.pairs_compared += compared
                        for members in finished:
                            self._publish(members)
            except BaseException:
                # Stop the remaining workers before the executor joins them
                self._cancel.set()
                raise


def scan_parallel(
    entries: Iterable[CatalogEntry],
    config: MatchConfig,
    callback: ScanCallback,
    max_workers: Optional[int] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    exhaustive: bool = False,
) -> DuplicateScanner:
    """Validate ``entries`` and start a background scan; returns the running scanner."""
    scanner = DuplicateScanner(
        entries,
        config,
        callback,
        max_workers=max_workers,
        batch_size=batch_size,
        exhaustive=exhaustive,
    )
    return scanner.start()
