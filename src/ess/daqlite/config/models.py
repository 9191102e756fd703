# SPDX-FileCopyrightText: 2025 Scipp contributors (https://github.com/scipp)
# SPDX-License-Identifier: BSD-3-Clause
"""
Configuration models for the histogramming consumer.

Configuration is validated once when it is loaded. Everything downstream assumes valid
values and does not re-check them per event.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Literal

import scipp as sc
import yaml
from pydantic import BaseModel, Field

TimeUnit = Literal['ns', 'us', 'ms', 's']


class GeometryConfig(BaseModel):
    """Detector dimensions and pixel id offset."""

    x_dim: int = Field(default=1, ge=1, description="Number of pixels along x.")
    y_dim: int = Field(default=1, ge=1, description="Number of pixels along y.")
    z_dim: int = Field(default=1, ge=1, description="Number of pixels along z.")
    offset: int = Field(
        default=0, ge=0, description="Offset subtracted from pixel ids before binning."
    )

    @property
    def num_pixels(self) -> int:
        return self.x_dim * self.y_dim * self.z_dim

    @property
    def min_pixel(self) -> int:
        """Smallest accepted pixel id. Pixel id 0 is never valid."""
        return self.offset + 1

    @property
    def max_pixel(self) -> int:
        return self.offset + self.num_pixels


class TofConfig(BaseModel):
    """
    Time-of-flight binning.

    Raw event times arrive in nanoseconds. They are divided by ``scale`` to obtain
    times in the display unit, in which ``max_value`` is given. If ``scale`` is not set
    it is derived from ``unit``.
    """

    max_value: int = Field(
        default=100_000, gt=0, description="Maximum time-of-flight in display units."
    )
    bin_size: int = Field(default=512, ge=2, description="Number of 1-D TOF bins.")
    bin_size_2d: int | None = Field(
        default=None,
        ge=2,
        description="Number of TOF bins in 2-D pixel/TOF views. Defaults to bin_size.",
    )
    unit: TimeUnit = Field(default='us', description="Display unit for times.")
    scale: int | None = Field(
        default=None, gt=0, description="Divisor converting raw times to display units."
    )

    _scale: int = 1
    _bin_size_2d: int = 2

    def model_post_init(self, /, __context: Any) -> None:
        """Resolve the derived scale and 2-D bin count once."""
        if self.scale is None:
            one = sc.scalar(1, unit=self.unit)
            self._scale = int(one.to(unit='ns', dtype='int64').value)
        else:
            self._scale = self.scale
        if self.bin_size_2d is None:
            self._bin_size_2d = self.bin_size
        else:
            self._bin_size_2d = self.bin_size_2d

    @property
    def time_scale(self) -> int:
        """Integer divisor converting raw nanosecond times to display units."""
        return self._scale

    @property
    def bins_2d(self) -> int:
        return self._bin_size_2d


class KafkaConfig(BaseModel):
    """Broker connection parameters."""

    broker: str = 'localhost:9092'
    topic: str = 'detector'
    message_max_bytes: int = Field(default=10_000_000, gt=0)
    fetch_message_max_bytes: int = Field(default=10_000_000, gt=0)
    replica_fetch_max_bytes: int = Field(default=10_000_000, gt=0)
    enable_auto_commit: bool = False
    enable_auto_offset_store: bool = False
    group_seed: str = Field(
        default='daqlite', description="Prefix of the randomised consumer group id."
    )
    poll_timeout: float = Field(
        default=1.0, gt=0, description="Seconds to block waiting for a message."
    )
    extra: dict[str, str] = Field(
        default_factory=dict,
        description="Additional librdkafka options, applied after all others.",
    )

    def to_consumer_config(self) -> dict[str, Any]:
        """
        Render the librdkafka consumer configuration.

        Every call yields a fresh group id so that independent viewers each receive
        the full stream.
        """
        config: dict[str, Any] = {
            'bootstrap.servers': self.broker,
            'message.max.bytes': self.message_max_bytes,
            'fetch.message.max.bytes': self.fetch_message_max_bytes,
            'replica.fetch.max.bytes': self.replica_fetch_max_bytes,
            'enable.auto.commit': self.enable_auto_commit,
            'enable.auto.offset.store': self.enable_auto_offset_store,
            'enable.partition.eof': True,
            'group.id': f'{self.group_seed}_{uuid.uuid4()}',
        }
        config.update(self.extra)
        return config


class DaqliteConfig(BaseModel):
    """Complete configuration of the histogramming consumer."""

    geometry: GeometryConfig = Field(default_factory=GeometryConfig)
    tof: TofConfig = Field(default_factory=TofConfig)
    kafka: KafkaConfig = Field(default_factory=KafkaConfig)
    sources: list[str] = Field(
        default_factory=list,
        description="Accepted source names. Empty accepts every source.",
    )


def load_config(path: str | Path) -> DaqliteConfig:
    """
    Load and validate configuration from a YAML file.

    Parameters
    ----------
    path:
        Path to the YAML file.

    Returns
    -------
    :
        Validated configuration.

    Raises
    ------
    FileNotFoundError:
        If the file does not exist.
    pydantic.ValidationError:
        If the file content is not a valid configuration.
    """
    with Path(path).open() as f:
        config_data = yaml.safe_load(f) or {}
    return DaqliteConfig.model_validate(config_data)
