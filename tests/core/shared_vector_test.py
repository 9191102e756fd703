# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
import threading

import numpy as np

from ess.daqlite.core.shared_vector import SharedVector


def test_new_vector_is_empty() -> None:
    vector = SharedVector()
    assert vector.size() == 0
    assert len(vector) == 0
    assert vector.get_snapshot().tolist() == []


def test_add_grows_to_length_of_values() -> None:
    vector = SharedVector()
    vector.add([1, 2, 3])
    vector.add([1, 1, 1, 1, 1])
    assert vector.get_snapshot().tolist() == [2, 3, 4, 1, 1]


def test_add_never_shrinks() -> None:
    vector = SharedVector()
    vector.add([1, 2, 3, 4])
    vector.add([10])
    assert vector.get_snapshot().tolist() == [11, 2, 3, 4]


def test_extend_appends() -> None:
    vector = SharedVector(dtype=np.int64)
    vector.extend([1, 2])
    vector.extend([])
    vector.extend([3])
    assert vector.get_snapshot().tolist() == [1, 2, 3]
    assert vector.size() == 3


def test_many_extends_keep_all_values() -> None:
    vector = SharedVector(dtype=np.int64)
    for i in range(1000):
        vector.extend([i, -i])
    snapshot = vector.get_snapshot()
    assert snapshot.size == 2000
    assert snapshot[::2].tolist() == list(range(1000))


def test_assign_replaces_content() -> None:
    vector = SharedVector(dtype=np.int64)
    vector.add([5, 5, 5, 5])
    vector.assign([1, 2])
    assert vector.get_snapshot().tolist() == [1, 2]


def test_snapshot_is_a_copy() -> None:
    vector = SharedVector()
    vector.add([1, 2])
    snapshot = vector.get_snapshot()
    snapshot[0] = 100
    vector.add([1])
    assert vector.get_snapshot().tolist() == [2, 2]


def test_clear_empties() -> None:
    vector = SharedVector()
    vector.add([1, 2])
    vector.clear()
    assert vector.size() == 0
    vector.add([3])
    assert vector.get_snapshot().tolist() == [3]


def test_fill_keeps_length() -> None:
    vector = SharedVector()
    vector.add([1, 2, 3])
    vector.fill(0)
    assert vector.get_snapshot().tolist() == [0, 0, 0]


def test_resize_pads_with_zeros_and_truncates() -> None:
    vector = SharedVector()
    vector.add([1, 2, 3])
    vector.resize(5)
    assert vector.get_snapshot().tolist() == [1, 2, 3, 0, 0]
    vector.resize(2)
    assert vector.get_snapshot().tolist() == [1, 2]
    vector.resize(4)
    assert vector.get_snapshot().tolist() == [1, 2, 0, 0]


def test_initial_size() -> None:
    vector = SharedVector(size=3)
    assert vector.get_snapshot().tolist() == [0, 0, 0]
    assert vector.dtype == np.uint64


def test_concurrent_adds_are_not_lost() -> None:
    vector = SharedVector()
    ones = np.ones(16, dtype=np.uint64)

    def worker() -> None:
        for _ in range(500):
            vector.add(ones)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert vector.get_snapshot().tolist() == [2000] * 16


def test_snapshot_and_reset_zeroes_binned_content() -> None:
    vector = SharedVector()
    vector.add([1, 2, 3])
    assert vector.snapshot_and_reset(binned=True).tolist() == [1, 2, 3]
    assert vector.get_snapshot().tolist() == [0, 0, 0]


def test_snapshot_and_reset_empties_raw_content() -> None:
    vector = SharedVector(dtype=np.int64)
    vector.extend([4, 5])
    assert vector.snapshot_and_reset(binned=False).tolist() == [4, 5]
    assert vector.size() == 0
