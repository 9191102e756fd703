# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from pathlib import Path

import pydantic
import pytest

from ess.daqlite.config.models import (
    DaqliteConfig,
    GeometryConfig,
    KafkaConfig,
    TofConfig,
    load_config,
)


class TestGeometryConfig:
    def test_derived_pixel_range(self) -> None:
        geometry = GeometryConfig(x_dim=4, y_dim=3, z_dim=2, offset=100)
        assert geometry.num_pixels == 24
        assert geometry.min_pixel == 101
        assert geometry.max_pixel == 124

    @pytest.mark.parametrize('field', ['x_dim', 'y_dim', 'z_dim'])
    def test_zero_dimension_is_rejected(self, field: str) -> None:
        with pytest.raises(pydantic.ValidationError):
            GeometryConfig(**{field: 0})

    def test_negative_offset_is_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            GeometryConfig(offset=-1)


class TestTofConfig:
    @pytest.mark.parametrize(
        ('unit', 'scale'), [('ns', 1), ('us', 1000), ('ms', 1_000_000)]
    )
    def test_scale_is_derived_from_unit(self, unit: str, scale: int) -> None:
        assert TofConfig(unit=unit).time_scale == scale

    def test_seconds(self) -> None:
        assert TofConfig(unit='s').time_scale == 1_000_000_000

    def test_explicit_scale_wins(self) -> None:
        assert TofConfig(unit='us', scale=7).time_scale == 7

    def test_bins_2d_defaults_to_bin_size(self) -> None:
        assert TofConfig(bin_size=64).bins_2d == 64
        assert TofConfig(bin_size=64, bin_size_2d=16).bins_2d == 16

    @pytest.mark.parametrize(
        'kwargs',
        [
            {'max_value': 0},
            {'bin_size': 1},
            {'bin_size_2d': 1},
            {'scale': 0},
            {'unit': 'minutes'},
        ],
    )
    def test_invalid_values_are_rejected(self, kwargs: dict) -> None:
        with pytest.raises(pydantic.ValidationError):
            TofConfig(**kwargs)


class TestKafkaConfig:
    def test_consumer_config(self) -> None:
        config = KafkaConfig(broker='kafka:9093', group_seed='viewer')
        rendered = config.to_consumer_config()
        assert rendered['bootstrap.servers'] == 'kafka:9093'
        assert rendered['enable.partition.eof'] is True
        assert rendered['enable.auto.commit'] is False
        assert rendered['group.id'].startswith('viewer_')

    def test_group_id_is_unique_per_consumer(self) -> None:
        config = KafkaConfig()
        first = config.to_consumer_config()['group.id']
        second = config.to_consumer_config()['group.id']
        assert first != second

    def test_extra_options_are_applied_last(self) -> None:
        config = KafkaConfig(
            extra={'security.protocol': 'SASL_SSL', 'bootstrap.servers': 'other:1'}
        )
        rendered = config.to_consumer_config()
        assert rendered['security.protocol'] == 'SASL_SSL'
        assert rendered['bootstrap.servers'] == 'other:1'


def test_default_config_accepts_every_source() -> None:
    config = DaqliteConfig()
    assert config.sources == []
    assert config.tof.time_scale == 1000


def test_load_config(tmp_path: Path) -> None:
    path = tmp_path / 'daqlite.yaml'
    path.write_text(
        """
geometry:
  x_dim: 32
  y_dim: 32
  offset: 1024
tof:
  max_value: 71000
  bin_size: 100
  unit: us
kafka:
  broker: kafka:9092
  topic: loki_detector
sources:
  - loki_detector_0
"""
    )
    config = load_config(path)
    assert config.geometry.num_pixels == 1024
    assert config.geometry.min_pixel == 1025
    assert config.tof.max_value == 71000
    assert config.tof.bins_2d == 100
    assert config.kafka.topic == 'loki_detector'
    assert config.sources == ['loki_detector_0']


def test_load_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / 'empty.yaml'
    path.write_text('')
    assert load_config(path) == DaqliteConfig()


def test_load_invalid_config_raises(tmp_path: Path) -> None:
    path = tmp_path / 'invalid.yaml'
    path.write_text('tof:\n  max_value: 0\n')
    with pytest.raises(pydantic.ValidationError):
        load_config(path)


def test_load_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'missing.yaml')
