# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

import threading

import numpy as np
import numpy.typing as npt


class SharedVector:
    """
    A growable 1-D numpy vector guarded by its own lock.

    The underlying array is never handed out. Readers obtain a copy through
    :py:meth:`get_snapshot`.
    """

    def __init__(self, dtype: npt.DTypeLike = np.uint64, size: int = 0) -> None:
        self._lock = threading.Lock()
        self._dtype = np.dtype(dtype)
        self._data = np.zeros(size, dtype=self._dtype)
        # Number of valid entries, the array may be over-allocated by extend().
        self._size = size

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    def add(self, values: npt.ArrayLike) -> None:
        """Add elementwise, growing (never shrinking) to the length of ``values``."""
        values = np.asarray(values)
        with self._lock:
            if values.size > self._size:
                self._resize_locked(values.size)
            self._data[: values.size] += values.astype(self._dtype, copy=False)

    def extend(self, values: npt.ArrayLike) -> None:
        """Append ``values`` at the end."""
        values = np.asarray(values)
        with self._lock:
            start = self._size
            self._resize_locked(start + values.size)
            self._data[start : self._size] = values

    def assign(self, values: npt.ArrayLike) -> None:
        """Replace the content with a copy of ``values``."""
        with self._lock:
            self._data = np.array(values, dtype=self._dtype)
            self._size = self._data.size

    def get_snapshot(self) -> npt.NDArray:
        with self._lock:
            return self._data[: self._size].copy()

    def snapshot_and_reset(self, *, binned: bool) -> npt.NDArray:
        """
        Copy the content and reset it within a single locked section.

        Binned content is zeroed keeping its length, otherwise the vector is emptied.
        """
        with self._lock:
            result = self._data[: self._size].copy()
            if binned:
                self._data[: self._size] = 0
            else:
                self._data = np.zeros(0, dtype=self._dtype)
                self._size = 0
            return result

    def clear(self) -> None:
        with self._lock:
            self._data = np.zeros(0, dtype=self._dtype)
            self._size = 0

    def fill(self, value: int = 0) -> None:
        with self._lock:
            self._data[: self._size] = value

    def resize(self, size: int) -> None:
        with self._lock:
            self._resize_locked(size)

    def size(self) -> int:
        with self._lock:
            return self._size

    def __len__(self) -> int:
        return self.size()

    def _resize_locked(self, size: int) -> None:
        if size > self._data.size:
            # Capacity at least doubles on reallocation.
            capacity = max(size, 2 * self._data.size)
            data = np.zeros(capacity, dtype=self._dtype)
            data[: self._size] = self._data[: self._size]
            self._data = data
        elif size < self._size:
            self._data[size : self._size] = 0
        self._size = size
