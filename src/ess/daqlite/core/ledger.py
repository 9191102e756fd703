# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
"""
Coordination of resets between independently scheduled consumers.

Several consumers may read the same accumulated data, each on its own timer. Data
may only be discarded once every subscribed consumer has read it. The ledger counts
subscribers and deliveries per :py:class:`DataKind` and tells the consumer completing
an epoch that it may clear.
"""

from __future__ import annotations

import threading

import structlog

from .types import CONSUMER_DATA_KINDS, ConsumerKind, DataKind

logger = structlog.get_logger(__name__)


class SubscriptionLedger:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[DataKind, int] = dict.fromkeys(DataKind, 0)
        self._deliveries: dict[DataKind, int] = dict.fromkeys(DataKind, 0)
        self._event_requests = 0

    def subscribe(self, consumer_kind: ConsumerKind, delta: int) -> None:
        """
        Register (``delta=+1``) or deregister (``delta=-1``) a consumer.

        The change applies to :py:attr:`DataKind.ANY` and to every data kind read by
        ``consumer_kind``.
        """
        if delta not in (1, -1):
            raise ValueError(f"delta must be +1 or -1, got {delta}")
        kinds = (DataKind.ANY, *CONSUMER_DATA_KINDS[consumer_kind])
        with self._lock:
            if delta < 0 and any(self._subscriptions[kind] == 0 for kind in kinds):
                raise ValueError(
                    f"Cannot unsubscribe {consumer_kind.value}: no active subscription"
                )
            for kind in kinds:
                self._subscriptions[kind] += delta
                # An epoch completed by a departing consumer starts over.
                if self._deliveries[kind] >= self._subscriptions[kind]:
                    self._deliveries[kind] = 0
            if self._event_requests >= self._subscriptions[DataKind.ANY]:
                self._event_requests = 0
        logger.debug(
            "subscription_changed",
            consumer_kind=consumer_kind.value,
            delta=delta,
            total=self.total_subscriptions(),
        )

    def subscription_count(self, data_kind: DataKind) -> int:
        with self._lock:
            return self._subscriptions[data_kind]

    def delivery_count(self, data_kind: DataKind) -> int:
        with self._lock:
            return self._deliveries[data_kind]

    def total_subscriptions(self) -> int:
        """Sum of subscription counts over all data kinds, including ``ANY``."""
        with self._lock:
            return sum(self._subscriptions.values())

    def claim(self, data_kind: DataKind) -> bool:
        """
        Record that one consumer has read the current epoch of ``data_kind``.

        Returns
        -------
        :
            True exactly when this call completes the epoch, i.e., every subscribed
            consumer has now read the data. The delivery count is reset in that case.
            Always False if nobody is subscribed.
        """
        with self._lock:
            subscribed = self._subscriptions[data_kind]
            if subscribed == 0:
                return False
            self._deliveries[data_kind] += 1
            if self._deliveries[data_kind] >= subscribed:
                self._deliveries[data_kind] = 0
                return True
            return False

    def record_event_request(self) -> bool:
        """
        Record that one consumer has collected the aggregate event counts.

        Returns
        -------
        :
            True when every consumer has collected them in this round, meaning the
            counts should be reset.
        """
        with self._lock:
            subscribed = self._subscriptions[DataKind.ANY]
            if subscribed == 0:
                return False
            self._event_requests += 1
            if self._event_requests >= subscribed:
                self._event_requests = 0
                return True
            return False
