# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
"""Background thread feeding the histogram store from the broker."""

from __future__ import annotations

import dataclasses
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog
from streaming_data_types.exceptions import WrongSchemaException

from ..kafka.consumer import BrokerClient, KafkaMessage, ReceiveStatus, classify
from ..kafka.decoder import DecodeError, RejectedSourceError
from .histogrammer import EventHistogrammer

logger = structlog.get_logger(__name__)

DEFAULT_POLL_TIMEOUT_SECONDS = 1.0
DEFAULT_METRICS_INTERVAL_SECONDS = 30.0


class LoopState(str, Enum):
    __slots__ = ()
    IDLE = "idle"
    CONNECTING = "connecting"
    CONSUMING = "consuming"
    DECODING = "decoding"
    ACCUMULATING = "accumulating"
    HALTED = "halted"


@dataclass
class ConsumerStats:
    """Message tallies of the ingestion loop since it was created."""

    messages_received: int = 0
    messages_timed_out: int = 0
    messages_data: int = 0
    messages_eof: int = 0
    messages_unknown: int = 0
    messages_other: int = 0
    messages_filtered: int = 0
    decode_failures: int = 0
    receive_errors: int = 0


class IngestionLoop:
    """
    Pulls messages from the broker and accumulates them into the histogram store.

    Exactly one background thread runs the loop. Failure to connect is fatal and
    raised from :py:meth:`start`. Afterwards the loop never terminates by itself:
    timeouts, end-of-partition, broker errors and undecodable messages are counted
    and the loop continues until :py:meth:`stop` is called. The stop request is
    checked between messages, so a message being processed is always completed.

    Parameters
    ----------
    connect:
        Callable establishing the broker subscription and returning the client.
    histogrammer:
        Decodes messages and writes them to the store.
    poll_timeout:
        Seconds to block in each receive call.
    metrics_interval:
        Seconds between consumer metrics log entries.
    """

    def __init__(
        self,
        *,
        connect: Callable[[], BrokerClient],
        histogrammer: EventHistogrammer,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS,
        metrics_interval: float = DEFAULT_METRICS_INTERVAL_SECONDS,
    ) -> None:
        self._connect = connect
        self._histogrammer = histogrammer
        self._poll_timeout = poll_timeout
        self._client: BrokerClient | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._state = LoopState.IDLE
        self._stats = ConsumerStats()
        self._stats_lock = threading.Lock()
        self._consecutive_errors = 0
        self._metrics_interval = metrics_interval
        self._last_metrics_time = time.monotonic()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def stats(self) -> ConsumerStats:
        """A copy of the current message tallies."""
        with self._stats_lock:
            return dataclasses.replace(self._stats)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def connect(self) -> None:
        """
        Establish the broker subscription if not done yet.

        Raises
        ------
        BrokerConnectionError:
            If the subscription cannot be established.
        """
        if self._client is not None:
            return
        self._state = LoopState.CONNECTING
        try:
            self._client = self._connect()
        except Exception:
            self._state = LoopState.HALTED
            logger.exception("broker_connection_failed")
            raise
        self._state = LoopState.CONSUMING
        logger.info("broker_connected")

    def start(self) -> None:
        """Connect and start the ingestion thread."""
        if self.is_running:
            return
        self.connect()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name='ingestion-loop', daemon=True
        )
        self._thread.start()
        logger.info("ingestion_loop_started")

    def stop(self, timeout: float | None = None) -> None:
        """Request a halt and wait for the thread to finish its current message."""
        self._stop_event.set()
        if self._thread is None:
            self._state = LoopState.HALTED
            return
        if self._thread is not threading.current_thread():
            join_timeout = 2 * self._poll_timeout + 5.0 if timeout is None else timeout
            self._thread.join(timeout=join_timeout)
            if self._thread.is_alive():
                logger.warning("ingestion_loop_stop_timeout")
                return
        self._thread = None
        logger.info("ingestion_loop_stopped")

    def step(self) -> bool:
        """
        Receive and handle a single message on the calling thread.

        Returns
        -------
        :
            True if the message carried data that was accumulated.
        """
        if self.is_running:
            raise RuntimeError("Ingestion loop is running, cannot step")
        self.connect()
        return self._step()

    def _step(self) -> bool:
        self._state = LoopState.CONSUMING
        message = self._client.receive(self._poll_timeout)
        return self.handle_message(message)

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    self._step()
                    self._consecutive_errors = 0
                except Exception:
                    self._consecutive_errors += 1
                    with self._stats_lock:
                        self._stats.receive_errors += 1
                    logger.exception(
                        "ingestion_loop_error",
                        consecutive_errors=self._consecutive_errors,
                    )
                    # Back off, but wake up immediately on a stop request.
                    self._stop_event.wait(min(self._consecutive_errors * 0.5, 5.0))
                self._maybe_log_metrics()
        finally:
            self._state = LoopState.HALTED

    def handle_message(self, message: KafkaMessage | None) -> bool:
        """
        Classify and, if it carries data, process one received message.

        Returns
        -------
        :
            True if data was accumulated into the store.
        """
        status = classify(message)
        with self._stats_lock:
            if message is not None:
                self._stats.messages_received += 1
            if status == ReceiveStatus.TIMED_OUT:
                self._stats.messages_timed_out += 1
            elif status == ReceiveStatus.PARTITION_EOF:
                self._stats.messages_eof += 1
            elif status == ReceiveStatus.UNKNOWN_TOPIC:
                self._stats.messages_unknown += 1
            elif status == ReceiveStatus.ERROR:
                self._stats.messages_other += 1
            else:
                self._stats.messages_data += 1
        if status in (ReceiveStatus.UNKNOWN_TOPIC, ReceiveStatus.ERROR):
            logger.warning(
                "consume_failed", status=status.value, error=str(message.error())
            )
        if status != ReceiveStatus.DATA:
            return False
        return self._process(message)

    def _process(self, message: KafkaMessage) -> bool:
        try:
            self._state = LoopState.DECODING
            decoded = self._histogrammer.decode(message.value() or b'')
            self._state = LoopState.ACCUMULATING
            self._histogrammer.accumulate(decoded)
        except WrongSchemaException as e:
            with self._stats_lock:
                self._stats.messages_unknown += 1
            logger.warning(
                "unknown_message_type", topic=message.topic(), reason=str(e)
            )
            return False
        except RejectedSourceError:
            with self._stats_lock:
                self._stats.messages_filtered += 1
            return False
        except DecodeError as e:
            with self._stats_lock:
                self._stats.decode_failures += 1
            logger.debug("message_dropped", topic=message.topic(), reason=str(e))
            return False
        finally:
            self._state = LoopState.CONSUMING
        return True

    def _maybe_log_metrics(self) -> None:
        """Log metrics if the interval has elapsed."""
        now = time.monotonic()
        if now - self._last_metrics_time < self._metrics_interval:
            return
        self._last_metrics_time = now
        logger.info("consumer_metrics", **dataclasses.asdict(self.stats))
