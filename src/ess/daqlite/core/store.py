# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
"""Thread-safe per-source histogram storage shared by ingestion and consumers."""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager

import numpy as np
import numpy.typing as npt
import structlog

from .ledger import SubscriptionLedger
from .shared_vector import SharedVector
from .types import ConsumerKind, DataKind, EventCounts

logger = structlog.get_logger(__name__)


def _dtype_for(data_kind: DataKind) -> np.dtype:
    return np.dtype(np.uint64 if data_kind.is_binned else np.int64)


class HistogramStore:
    """
    Per-source, per-data-kind accumulators.

    Binned kinds (pixel and time-of-flight histograms) hold counters whose length is
    set by the first accumulation and only ever grows. Resetting them zeroes the
    counters. Raw kinds hold logs that grow by appending and are emptied on reset.

    Writes come from the single ingestion thread, reads from any number of consumers.
    Each (data kind, source) container has its own lock, so writes to different
    sources do not contend. The store also owns the :py:class:`SubscriptionLedger`
    deciding when consumers may reset data, and the aggregate event counts.

    Parameters
    ----------
    ledger:
        Subscription ledger. A new one is created if not given.
    """

    def __init__(self, *, ledger: SubscriptionLedger | None = None) -> None:
        self._ledger = SubscriptionLedger() if ledger is None else ledger
        self._lock = threading.Lock()
        self._containers: dict[DataKind, dict[str, SharedVector]] = {
            kind: {} for kind in DataKind if kind.holds_data
        }
        self._counts_lock = threading.Lock()
        self._counts = EventCounts()

    @property
    def ledger(self) -> SubscriptionLedger:
        return self._ledger

    def _get(self, data_kind: DataKind, source: str) -> SharedVector | None:
        if not data_kind.holds_data:
            raise ValueError(f"Data kind '{data_kind.value}' does not hold data")
        with self._lock:
            return self._containers[data_kind].get(source)

    def _get_or_create(self, data_kind: DataKind, source: str) -> SharedVector:
        if not data_kind.holds_data:
            raise ValueError(f"Data kind '{data_kind.value}' does not hold data")
        with self._lock:
            container = self._containers[data_kind].get(source)
            if container is None:
                container = SharedVector(dtype=_dtype_for(data_kind))
                self._containers[data_kind][source] = container
                logger.info("source_added", data_kind=data_kind.value, source=source)
            return container

    def add(self, data_kind: DataKind, source: str, values: npt.ArrayLike) -> None:
        """Accumulate ``values`` elementwise, growing the container if needed."""
        self._get_or_create(data_kind, source).add(values)

    def extend(self, data_kind: DataKind, source: str, values: npt.ArrayLike) -> None:
        """Append ``values`` to a raw log."""
        self._get_or_create(data_kind, source).extend(values)

    def assign(self, data_kind: DataKind, source: str, values: npt.ArrayLike) -> None:
        """Replace the content of a container."""
        self._get_or_create(data_kind, source).assign(values)

    def read(
        self, data_kind: DataKind, source: str = '', reset: bool = False
    ) -> npt.NDArray:
        """
        Return a copy of the data of ``source``.

        If ``reset`` is requested the consumer claims the current epoch from the
        ledger. Storage is only reset once every subscriber of ``data_kind`` has
        claimed, otherwise it is left intact for the remaining consumers. Binned
        data is reset to zeros, raw logs are emptied.
        """
        container = self._get(data_kind, source)
        if container is None:
            return np.zeros(0, dtype=_dtype_for(data_kind))
        if reset and self._ledger.claim(data_kind):
            return container.snapshot_and_reset(binned=data_kind.is_binned)
        return container.get_snapshot()

    def size(self, data_kind: DataKind, source: str = '') -> int:
        container = self._get(data_kind, source)
        return 0 if container is None else container.size()

    def bin_size(self, source: str = '') -> int:
        """Number of TOF bins of a pre-binned source, derived from its bin edges."""
        return max(self.size(DataKind.RAW_TOFS, source) - 1, 0)

    def sources(self, data_kind: DataKind) -> list[str]:
        """Names of sources that have a container for ``data_kind``."""
        if not data_kind.holds_data:
            raise ValueError(f"Data kind '{data_kind.value}' does not hold data")
        with self._lock:
            return sorted(self._containers[data_kind])

    def count_events(self, *, seen: int, accepted: int, discarded: int) -> None:
        with self._counts_lock:
            self._counts = EventCounts(
                seen=self._counts.seen + seen,
                accepted=self._counts.accepted + accepted,
                discarded=self._counts.discarded + discarded,
            )

    def get_event_counts(self) -> EventCounts:
        with self._counts_lock:
            return self._counts

    def record_event_request(self) -> None:
        """
        Record that a consumer has collected the event counts.

        Counts are reset once every subscribed consumer has done so in this round.
        """
        if self._ledger.record_event_request():
            with self._counts_lock:
                self._counts = EventCounts()

    def subscribe(self, consumer_kind: ConsumerKind, adding: bool = True) -> None:
        self._ledger.subscribe(consumer_kind, 1 if adding else -1)

    def total_subscriptions(self) -> int:
        return self._ledger.total_subscriptions()

    @contextmanager
    def subscription(self, consumer_kind: ConsumerKind) -> Generator[None, None, None]:
        """Keep ``consumer_kind`` subscribed for the duration of the context."""
        self.subscribe(consumer_kind, adding=True)
        try:
            yield
        finally:
            self.subscribe(consumer_kind, adding=False)
