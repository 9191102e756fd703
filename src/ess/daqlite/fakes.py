# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2024 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Any

import numpy as np
import numpy.typing as npt
from streaming_data_types import dataarray_da00, eventdata_ev42, eventdata_ev44

from .kafka.consumer import BrokerClient, KafkaMessage


class FakeKafkaError:
    """Stand-in for :py:class:`confluent_kafka.KafkaError`."""

    def __init__(self, code: int, reason: str = '') -> None:
        self._code = code
        self._reason = reason

    def code(self) -> int:
        return self._code

    def str(self) -> str:
        return self._reason

    def __str__(self) -> str:
        return self._reason or f'KafkaError code {self._code}'


class FakeKafkaMessage(KafkaMessage):
    def __init__(
        self,
        *,
        value: bytes | None = None,
        topic: str = 'detector',
        error: FakeKafkaError | None = None,
    ) -> None:
        self._value = value
        self._topic = topic
        self._error = error

    def error(self) -> Any | None:
        return self._error

    def value(self) -> bytes | None:
        return self._value

    def topic(self) -> str:
        return self._topic

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FakeKafkaMessage):
            return False
        return self._value == other._value and self._topic == other._topic


class FakeBrokerClient(BrokerClient):
    """
    A broker client returning queued messages from memory for testing purposes.

    ``receive`` returns ``None``, i.e., a timeout, once the queue is exhausted. It does
    not block.
    """

    def __init__(self, messages: Iterable[KafkaMessage | bytes] = ()) -> None:
        self._queue: deque[KafkaMessage] = deque()
        self.receive_calls = 0
        self.push(messages)

    def push(self, messages: Iterable[KafkaMessage | bytes]) -> None:
        for msg in messages:
            if isinstance(msg, bytes | bytearray):
                msg = FakeKafkaMessage(value=bytes(msg))
            self._queue.append(msg)

    def receive(self, timeout: float) -> KafkaMessage | None:
        self.receive_calls += 1
        return self._queue.popleft() if self._queue else None

    def __len__(self) -> int:
        return len(self._queue)


def serialise_events(
    pixel_id: npt.ArrayLike,
    time_of_flight: npt.ArrayLike,
    *,
    source_name: str = 'detector',
    message_id: int = 0,
    schema: str = 'ev44',
) -> bytes:
    """Serialise events as ``ev44`` or legacy ``ev42`` for feeding fake clients."""
    tof = np.asarray(time_of_flight, dtype=np.int32)
    pixels = np.asarray(pixel_id, dtype=np.int32)
    if schema == 'ev42':
        return eventdata_ev42.serialise_ev42(
            source_name=source_name,
            message_id=message_id,
            pulse_time=0,
            time_of_flight=tof,
            detector_id=pixels,
        )
    return eventdata_ev44.serialise_ev44(
        source_name=source_name,
        message_id=message_id,
        reference_time=[0],
        reference_time_index=0,
        time_of_flight=tof,
        pixel_id=pixels,
    )


def serialise_histogram(
    bin_edges: npt.ArrayLike,
    values: npt.ArrayLike,
    *,
    source_name: str = 'histogram',
    timestamp_ns: int = 0,
) -> bytes:
    """Serialise a pre-binned time-of-flight histogram as ``da00``."""
    edges = np.asarray(bin_edges, dtype=np.int64)
    counts = np.asarray(values, dtype=np.int64)
    return dataarray_da00.serialise_da00(
        source_name=source_name,
        timestamp_ns=timestamp_ns,
        data=[
            dataarray_da00.Variable(
                name='time_of_flight',
                data=edges,
                axes=['time_of_flight'],
                shape=edges.shape,
                unit='ns',
            ),
            dataarray_da00.Variable(
                name='signal',
                data=counts,
                axes=['time_of_flight'],
                shape=counts.shape,
                unit='counts',
            ),
        ],
    )
