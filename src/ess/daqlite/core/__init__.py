# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from .binning import BinnedEvents, Binner
from .ledger import SubscriptionLedger
from .shared_vector import SharedVector
from .sources import SourceRegistry
from .store import HistogramStore
from .types import CONSUMER_DATA_KINDS, ConsumerKind, DataKind, EventCounts

__all__ = [
    'CONSUMER_DATA_KINDS',
    'BinnedEvents',
    'Binner',
    'ConsumerKind',
    'DataKind',
    'EventCounts',
    'HistogramStore',
    'SharedVector',
    'SourceRegistry',
    'SubscriptionLedger',
]
