# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
"""Mapping of raw pixel ids and event times to histogram bin indices."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..config.models import GeometryConfig, TofConfig


@dataclass(frozen=True, slots=True, kw_only=True)
class BinnedEvents:
    """
    Result of binning the events of a single message.

    ``pixel_histogram`` and ``tof_histogram`` count only accepted events.
    ``raw_pixel_ids`` and ``raw_tof_bins`` record every event of the message, with
    times already converted to 2-D TOF bin indices.
    """

    pixel_histogram: npt.NDArray[np.uint64]
    tof_histogram: npt.NDArray[np.uint64]
    raw_pixel_ids: npt.NDArray[np.int64]
    raw_tof_bins: npt.NDArray[np.int64]
    accepted: int
    discarded: int


class Binner:
    """
    Quantizes pixel ids and times of flight.

    Pixel ids are valid in the inclusive range ``[offset + 1, offset + num_pixels]``
    and are re-based by subtracting the offset, so the pixel histogram has
    ``num_pixels + 1`` entries and entry 0 stays empty. Times are divided by the
    configured scale, clamped to ``[0, max_value]`` and mapped linearly onto
    ``[0, bin_count - 1]`` using integer division.
    """

    def __init__(self, *, geometry: GeometryConfig, tof: TofConfig) -> None:
        self._offset = geometry.offset
        self._min_pixel = geometry.min_pixel
        self._max_pixel = geometry.max_pixel
        self._pixel_bins = geometry.num_pixels + 1
        self._scale = tof.time_scale
        self._max_time = tof.max_value
        self._bin_count = tof.bin_size
        self._bin_count_2d = tof.bins_2d

    @property
    def pixel_bins(self) -> int:
        return self._pixel_bins

    @property
    def tof_bins(self) -> int:
        return self._bin_count

    @property
    def tof_bins_2d(self) -> int:
        return self._bin_count_2d

    def is_valid_pixel(self, pixel_id: int) -> bool:
        return pixel_id != 0 and self._min_pixel <= pixel_id <= self._max_pixel

    def pixel_bin(self, pixel_id: int) -> int | None:
        """Bin index of a pixel id, or None if the pixel id is not accepted."""
        if not self.is_valid_pixel(pixel_id):
            return None
        return pixel_id - self._offset

    def to_display_time(self, time_raw: int) -> int:
        return int(time_raw) // self._scale

    def time_bin(self, time_raw: int, *, bin_count: int | None = None) -> int:
        """Bin index of a raw time, using the 1-D bin count unless overridden."""
        bins = self._bin_count if bin_count is None else bin_count
        clamped = min(max(self.to_display_time(time_raw), 0), self._max_time)
        return clamped * (bins - 1) // self._max_time

    def time_bins(
        self, times_raw: npt.ArrayLike, *, bin_count: int | None = None
    ) -> npt.NDArray[np.int64]:
        """Vectorized form of :py:meth:`time_bin`."""
        bins = self._bin_count if bin_count is None else bin_count
        times = np.asarray(times_raw, dtype=np.int64) // self._scale
        np.clip(times, 0, self._max_time, out=times)
        return times * (bins - 1) // self._max_time

    def accepted_mask(self, pixel_ids: npt.ArrayLike) -> npt.NDArray[np.bool_]:
        pixels = np.asarray(pixel_ids, dtype=np.int64)
        return (pixels != 0) & (pixels >= self._min_pixel) & (pixels <= self._max_pixel)

    def bin_events(
        self, pixel_ids: npt.ArrayLike, times_raw: npt.ArrayLike
    ) -> BinnedEvents:
        """
        Histogram the events of one message into freshly allocated local buffers.

        Parameters
        ----------
        pixel_ids:
            Raw pixel ids of the events.
        times_raw:
            Raw times of flight of the events, same length as ``pixel_ids``.
        """
        pixels = np.asarray(pixel_ids, dtype=np.int64)
        times = np.asarray(times_raw, dtype=np.int64)
        if pixels.shape != times.shape:
            raise ValueError(
                f"pixel_ids and times must have the same length, "
                f"got {pixels.size} and {times.size}"
            )
        mask = self.accepted_mask(pixels)
        accepted = int(np.count_nonzero(mask))
        pixel_histogram = np.bincount(
            pixels[mask] - self._offset, minlength=self._pixel_bins
        ).astype(np.uint64)
        tof_histogram = np.bincount(
            self.time_bins(times[mask]), minlength=self._bin_count
        ).astype(np.uint64)
        return BinnedEvents(
            pixel_histogram=pixel_histogram,
            tof_histogram=tof_histogram,
            raw_pixel_ids=pixels,
            raw_tof_bins=self.time_bins(times, bin_count=self._bin_count_2d),
            accepted=accepted,
            discarded=pixels.size - accepted,
        )
