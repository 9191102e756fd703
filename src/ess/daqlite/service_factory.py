# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

import argparse
from collections.abc import Callable
from contextlib import ExitStack

import structlog

from .config.models import DaqliteConfig, load_config
from .core.binning import Binner
from .core.histogrammer import EventHistogrammer
from .core.ingestion import IngestionLoop
from .core.service import Service
from .core.sources import SourceRegistry
from .core.store import HistogramStore
from .kafka import consumer as kafka_consumer
from .kafka.consumer import BrokerClient, KafkaBrokerClient
from .kafka.decoder import MessageDecoder
from .logging_config import configure_logging

logger = structlog.get_logger(__name__)


class HistogramServiceBuilder:
    """
    Wires decoder, binner, store and ingestion loop from a validated configuration.

    Parameters
    ----------
    config:
        The configuration. It is validated on construction, so building never fails
        because of invalid values.
    """

    def __init__(self, config: DaqliteConfig) -> None:
        self._config = config
        self._registry = SourceRegistry(config.sources)
        self._binner = Binner(geometry=config.geometry, tof=config.tof)
        logger.info(
            "histogram_service_configured",
            pixels=config.geometry.num_pixels,
            min_pixel=config.geometry.min_pixel,
            max_pixel=config.geometry.max_pixel,
            tof_bins=config.tof.bin_size,
            tof_bins_2d=config.tof.bins_2d,
            tof_scale=config.tof.time_scale,
            sources=list(self._registry),
        )

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def binner(self) -> Binner:
        return self._binner

    def from_consumer_config(self, install_signal_handlers: bool = False) -> Service:
        """
        Create a service reading from the configured Kafka topic.

        The consumer is only created when the service starts. Failure to connect is
        raised from :py:meth:`Service.start`.
        """
        resources = ExitStack()

        def connect() -> BrokerClient:
            consumer = resources.enter_context(
                kafka_consumer.make_consumer_from_config(self._config.kafka)
            )
            return KafkaBrokerClient(consumer)

        return self._build(
            connect=connect,
            resources=resources,
            install_signal_handlers=install_signal_handlers,
        )

    def from_client(
        self, client: BrokerClient, resources: ExitStack | None = None
    ) -> Service:
        """Create a service reading from an already connected client."""
        return self._build(connect=lambda: client, resources=resources)

    def _build(
        self,
        *,
        connect: Callable[[], BrokerClient],
        resources: ExitStack | None,
        install_signal_handlers: bool = False,
    ) -> Service:
        store = HistogramStore()
        histogrammer = EventHistogrammer(
            store=store,
            binner=self._binner,
            decoder=MessageDecoder(registry=self._registry, tof=self._config.tof),
        )
        loop = IngestionLoop(
            connect=connect,
            histogrammer=histogrammer,
            poll_timeout=self._config.kafka.poll_timeout,
        )
        return Service(
            loop=loop,
            store=store,
            resources=resources,
            install_signal_handlers=install_signal_handlers,
        )


def make_histogram_service(
    config: DaqliteConfig, *, client: BrokerClient | None = None
) -> Service:
    """Create a histogramming service, reading from Kafka unless a client is given."""
    builder = HistogramServiceBuilder(config)
    if client is None:
        return builder.from_consumer_config()
    return builder.from_client(client)


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Live histogramming of detector events from Kafka',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('config', help='Path to the YAML configuration file')
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Minimum log level',
    )
    parser.add_argument(
        '--log-json-file', default=None, help='Also write JSON logs to this file'
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = make_parser().parse_args(argv)
    configure_logging(level=args.log_level, json_file=args.log_json_file)
    builder = HistogramServiceBuilder(load_config(args.config))
    with builder.from_consumer_config(install_signal_handlers=True) as service:
        service.start(blocking=True)


if __name__ == "__main__":
    main()
