# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
import pytest

from ess.daqlite.config.models import DaqliteConfig, GeometryConfig, TofConfig


@pytest.fixture
def config() -> DaqliteConfig:
    """100 pixels, 8 TOF bins up to 800 us, times arriving in ns."""
    return DaqliteConfig(
        geometry=GeometryConfig(x_dim=10, y_dim=10, offset=0),
        tof=TofConfig(max_value=800, bin_size=8, unit='us'),
    )
