# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
# ruff: noqa: E402, I

import importlib.metadata

try:
    __version__ = importlib.metadata.version('essdaqlite')
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

del importlib

from .config import DaqliteConfig, load_config
from .core import (
    CONSUMER_DATA_KINDS,
    ConsumerKind,
    DataKind,
    EventCounts,
    HistogramStore,
    SubscriptionLedger,
)
from .service_factory import HistogramServiceBuilder, make_histogram_service

__all__ = [
    'CONSUMER_DATA_KINDS',
    'ConsumerKind',
    'DaqliteConfig',
    'DataKind',
    'EventCounts',
    'HistogramServiceBuilder',
    'HistogramStore',
    'SubscriptionLedger',
    'load_config',
    'make_histogram_service',
]
