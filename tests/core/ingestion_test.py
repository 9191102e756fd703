# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
import time

import pytest
from confluent_kafka import KafkaError
from structlog.testing import capture_logs

from ess.daqlite.config.models import DaqliteConfig
from ess.daqlite.core.binning import Binner
from ess.daqlite.core.histogrammer import EventHistogrammer
from ess.daqlite.core.ingestion import ConsumerStats, IngestionLoop, LoopState
from ess.daqlite.core.sources import SourceRegistry
from ess.daqlite.core.store import HistogramStore
from ess.daqlite.core.types import DataKind
from ess.daqlite.fakes import (
    FakeBrokerClient,
    FakeKafkaError,
    FakeKafkaMessage,
    serialise_events,
    serialise_histogram,
)
from ess.daqlite.kafka.consumer import BrokerConnectionError
from ess.daqlite.kafka.decoder import MessageDecoder


def make_loop(
    config: DaqliteConfig, client: FakeBrokerClient, sources: tuple[str, ...] = ()
) -> tuple[IngestionLoop, HistogramStore]:
    store = HistogramStore()
    histogrammer = EventHistogrammer(
        store=store,
        binner=Binner(geometry=config.geometry, tof=config.tof),
        decoder=MessageDecoder(registry=SourceRegistry(sources), tof=config.tof),
    )
    loop = IngestionLoop(
        connect=lambda: client, histogrammer=histogrammer, poll_timeout=0.01
    )
    return loop, store


def error_message(code: int) -> FakeKafkaMessage:
    return FakeKafkaMessage(error=FakeKafkaError(code, 'broker says no'))


class TestStep:
    def test_step_accumulates_data(self, config: DaqliteConfig) -> None:
        client = FakeBrokerClient([serialise_events([50], [300_000])])
        loop, store = make_loop(config, client)
        assert loop.step()
        assert store.read(DataKind.PIXEL_HISTOGRAM)[50] == 1
        assert loop.stats.messages_received == 1
        assert loop.stats.messages_data == 1
        assert loop.state == LoopState.CONSUMING

    def test_timeout_is_counted(self, config: DaqliteConfig) -> None:
        loop, _ = make_loop(config, FakeBrokerClient())
        assert not loop.step()
        assert loop.stats == ConsumerStats(messages_timed_out=1)

    def test_broker_status_classification(self, config: DaqliteConfig) -> None:
        client = FakeBrokerClient(
            [
                error_message(KafkaError._TIMED_OUT),
                error_message(KafkaError._PARTITION_EOF),
                error_message(KafkaError._UNKNOWN_TOPIC),
                error_message(KafkaError.UNKNOWN_TOPIC_OR_PART),
                error_message(KafkaError._TRANSPORT),
            ]
        )
        loop, _ = make_loop(config, client)
        assert not any(loop.step() for _ in range(5))
        stats = loop.stats
        assert stats.messages_received == 5
        assert stats.messages_timed_out == 1
        assert stats.messages_eof == 1
        assert stats.messages_unknown == 2
        assert stats.messages_other == 1
        assert stats.messages_data == 0

    def test_broker_errors_are_logged(self, config: DaqliteConfig) -> None:
        client = FakeBrokerClient([error_message(KafkaError._TRANSPORT)])
        loop, _ = make_loop(config, client)
        with capture_logs() as logs:
            loop.step()
        failures = [log for log in logs if log['event'] == 'consume_failed']
        assert len(failures) == 1
        assert failures[0]['status'] == 'error'

    def test_unknown_schema_is_counted_and_logged(
        self, config: DaqliteConfig
    ) -> None:
        client = FakeBrokerClient([b'\x00\x00\x00\x00abcd\x00\x00\x00\x00'])
        loop, store = make_loop(config, client)
        with capture_logs() as logs:
            assert not loop.step()
        assert loop.stats.messages_unknown == 1
        assert any(log['event'] == 'unknown_message_type' for log in logs)
        assert store.sources(DataKind.PIXEL_HISTOGRAM) == []

    def test_rejected_source_is_filtered(self, config: DaqliteConfig) -> None:
        client = FakeBrokerClient(
            [
                serialise_events([1], [0], source_name='dream'),
                serialise_events([1], [0], source_name='loki'),
            ]
        )
        loop, store = make_loop(config, client, sources=('loki',))
        assert not loop.step()
        assert loop.step()
        assert loop.stats.messages_filtered == 1
        assert store.sources(DataKind.PIXEL_HISTOGRAM) == ['loki']

    def test_invalid_histogram_is_dropped(self, config: DaqliteConfig) -> None:
        client = FakeBrokerClient(
            [
                serialise_histogram([0, 10], [1, 2]),
                serialise_histogram([0, 10, 20], [1, 2]),
            ]
        )
        loop, store = make_loop(config, client)
        assert not loop.step()
        assert loop.step()
        assert loop.stats.decode_failures == 1
        assert store.read(DataKind.PIXEL_HISTOGRAM).tolist() == [1, 2]
        assert store.get_event_counts().discarded == 1

    def test_unequal_event_arrays_are_dropped(self, config: DaqliteConfig) -> None:
        client = FakeBrokerClient([serialise_events([1, 2], [0])])
        loop, store = make_loop(config, client)
        assert not loop.step()
        assert loop.stats.decode_failures == 1
        assert store.get_event_counts().seen == 0

    def test_empty_payload_is_unknown(self, config: DaqliteConfig) -> None:
        loop, _ = make_loop(config, FakeBrokerClient([FakeKafkaMessage()]))
        assert not loop.step()
        assert loop.stats.messages_unknown == 1


class TestConnection:
    def test_connection_failure_halts(self, config: DaqliteConfig) -> None:
        def connect() -> FakeBrokerClient:
            raise BrokerConnectionError("no broker")

        loop, _ = make_loop(config, FakeBrokerClient())
        loop._connect = connect
        with pytest.raises(BrokerConnectionError, match='no broker'):
            loop.start()
        assert loop.state == LoopState.HALTED
        assert not loop.is_running

    def test_connects_once(self, config: DaqliteConfig) -> None:
        calls = []
        client = FakeBrokerClient()

        def connect() -> FakeBrokerClient:
            calls.append(1)
            return client

        loop, _ = make_loop(config, client)
        loop._connect = connect
        loop.step()
        loop.step()
        assert len(calls) == 1


def wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestThread:
    def test_background_thread_consumes_all_messages(
        self, config: DaqliteConfig
    ) -> None:
        client = FakeBrokerClient([serialise_events([3], [0])] * 10)
        loop, store = make_loop(config, client)
        with loop:
            assert loop.is_running
            assert wait_for(lambda: loop.stats.messages_data == 10)
        assert not loop.is_running
        assert loop.state == LoopState.HALTED
        assert store.read(DataKind.PIXEL_HISTOGRAM)[3] == 10

    def test_step_is_refused_while_running(self, config: DaqliteConfig) -> None:
        loop, _ = make_loop(config, FakeBrokerClient())
        with loop:
            with pytest.raises(RuntimeError, match='running'):
                loop.step()

    def test_receive_exception_does_not_stop_loop(
        self, config: DaqliteConfig
    ) -> None:
        class FlakyClient(FakeBrokerClient):
            def receive(self, timeout: float):
                if self.receive_calls == 0:
                    self.receive_calls += 1
                    raise RuntimeError("transient")
                return super().receive(timeout)

        client = FlakyClient([serialise_events([3], [0])])
        loop, store = make_loop(config, client)
        with loop:
            assert wait_for(lambda: loop.stats.messages_data == 1)
        assert loop.stats.receive_errors == 1
        assert store.read(DataKind.PIXEL_HISTOGRAM)[3] == 1

    def test_stop_without_start(self, config: DaqliteConfig) -> None:
        loop, _ = make_loop(config, FakeBrokerClient())
        loop.stop()
        assert loop.state == LoopState.HALTED
