# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

import structlog

from ..kafka.decoder import (
    BinEdgeMismatchError,
    BinnedHistogram,
    EventBatch,
    MessageDecoder,
)
from .binning import Binner
from .store import HistogramStore
from .types import DataKind

logger = structlog.get_logger(__name__)


class EventHistogrammer:
    """
    Decodes message buffers and accumulates their content into the store.

    Events of a message are binned into local buffers first. Each buffer is then
    merged into the store with a single locked operation, so the store's locks are
    never held while scanning events.
    """

    def __init__(
        self, *, store: HistogramStore, binner: Binner, decoder: MessageDecoder
    ) -> None:
        self._store = store
        self._binner = binner
        self._decoder = decoder

    def process(self, buffer: bytes) -> int:
        """
        Decode and accumulate one message.

        Returns
        -------
        :
            Number of events processed, or the number of bins for pre-binned data.

        Raises
        ------
        streaming_data_types.exceptions.WrongSchemaException:
            If the schema is unknown.
        DecodeError:
            If the message is rejected. Nothing is written to the store in that case.
        """
        return self.accumulate(self.decode(buffer))

    def decode(self, buffer: bytes) -> EventBatch | BinnedHistogram:
        try:
            return self._decoder.decode(buffer)
        except BinEdgeMismatchError:
            self._store.count_events(seen=0, accepted=0, discarded=1)
            raise

    def accumulate(self, decoded: EventBatch | BinnedHistogram) -> int:
        if isinstance(decoded, BinnedHistogram):
            return self.add_histogram(decoded)
        return self.add_events(decoded)

    def add_events(self, batch: EventBatch) -> int:
        binned = self._binner.bin_events(batch.pixel_id, batch.time_of_flight)
        source = batch.source_name
        self._store.add(DataKind.PIXEL_HISTOGRAM, source, binned.pixel_histogram)
        self._store.add(DataKind.TOF_HISTOGRAM, source, binned.tof_histogram)
        self._store.extend(DataKind.RAW_PIXEL_IDS, source, binned.raw_pixel_ids)
        self._store.extend(DataKind.RAW_TOFS, source, binned.raw_tof_bins)
        self._store.count_events(
            seen=len(batch), accepted=binned.accepted, discarded=binned.discarded
        )
        return len(batch)

    def add_histogram(self, histogram: BinnedHistogram) -> int:
        # Values accumulate while the edges are replaced by those of the latest message.
        source = histogram.source_name
        self._store.add(DataKind.PIXEL_HISTOGRAM, source, histogram.values)
        self._store.assign(DataKind.RAW_TOFS, source, histogram.bin_edges)
        self._store.count_events(seen=1, accepted=1, discarded=0)
        return self._store.size(DataKind.PIXEL_HISTOGRAM, source)
