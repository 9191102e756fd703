# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType


class DataKind(str, Enum):
    """Kinds of data held by the histogram store."""

    __slots__ = ()
    NONE = "none"
    # Synthetic aggregate used for counting consumers, never holds data.
    ANY = "any"
    PIXEL_HISTOGRAM = "pixel_histogram"
    TOF_HISTOGRAM = "tof_histogram"
    RAW_PIXEL_IDS = "raw_pixel_ids"
    RAW_TOFS = "raw_tofs"

    @property
    def holds_data(self) -> bool:
        return self not in (DataKind.NONE, DataKind.ANY)

    @property
    def is_binned(self) -> bool:
        return self in (DataKind.PIXEL_HISTOGRAM, DataKind.TOF_HISTOGRAM)


class ConsumerKind(str, Enum):
    """Kinds of plot windows reading from the histogram store."""

    __slots__ = ()
    TOF = "tof"
    TOF2D = "tof2d"
    PIXELS = "pixels"
    HISTOGRAM = "histogram"


CONSUMER_DATA_KINDS: MappingProxyType[ConsumerKind, tuple[DataKind, ...]] = (
    MappingProxyType(
        {
            ConsumerKind.TOF: (DataKind.TOF_HISTOGRAM,),
            ConsumerKind.TOF2D: (DataKind.RAW_PIXEL_IDS, DataKind.RAW_TOFS),
            ConsumerKind.PIXELS: (DataKind.PIXEL_HISTOGRAM,),
            ConsumerKind.HISTOGRAM: (DataKind.PIXEL_HISTOGRAM,),
        }
    )
)
"""Data kinds each consumer kind reads, and therefore subscribes to."""


@dataclass(frozen=True, slots=True)
class EventCounts:
    """Aggregate event totals since the last completed measurement round."""

    seen: int = 0
    accepted: int = 0
    discarded: int = 0
