# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2024 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

import signal
import sys
import threading
from contextlib import ExitStack
from typing import Any, Self

import structlog

from .ingestion import IngestionLoop
from .store import HistogramStore


class Service:
    """
    Lifecycle of the histogramming consumer.

    Owns the ingestion loop and the store it feeds. Consumers obtain the store via
    :py:attr:`store`. If resources were passed, this class should be used as a
    context manager so they are released on exit.
    """

    def __init__(
        self,
        *,
        loop: IngestionLoop,
        store: HistogramStore,
        resources: ExitStack | None = None,
        install_signal_handlers: bool = False,
    ) -> None:
        self._logger = structlog.get_logger()
        self._loop = loop
        self._store = store
        self._resources = resources
        self._stopped = threading.Event()
        if install_signal_handlers:
            self._setup_signal_handlers()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the context manager protocol, ensuring resources are cleaned up."""
        if self.is_running:
            self.stop()
        if self._resources is not None:
            self._logger.info("Closing resources...")
            self._resources.close()
            self._logger.info("Resources closed")

    @property
    def store(self) -> HistogramStore:
        return self._store

    @property
    def loop(self) -> IngestionLoop:
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._loop.is_running

    def _setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown"""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)
        self._logger.info("Registered signal handlers")

    def _handle_shutdown(self, signum: int, _: Any) -> None:
        """Handle shutdown signals"""
        self._logger.info("Received signal, initiating shutdown...", signum=signum)
        self.stop()
        sys.exit(0)

    def start(self, blocking: bool = False) -> None:
        """
        Connect to the broker and start ingesting.

        Raises
        ------
        BrokerConnectionError:
            If the broker subscription cannot be established.
        """
        self._logger.info("Starting service...")
        self._stopped.clear()
        self._loop.start()
        self._logger.info("Service started")
        if blocking:
            self.run_forever()

    def run_forever(self) -> None:
        """Block until the service is stopped."""
        try:
            self._stopped.wait()
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop the service gracefully"""
        self._logger.info("Stopping service...")
        self._loop.stop()
        self._stopped.set()
        self._logger.info("Service stopped")
