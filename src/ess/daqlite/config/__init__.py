# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)

from .models import DaqliteConfig, GeometryConfig, KafkaConfig, TofConfig, load_config

__all__ = ['DaqliteConfig', 'GeometryConfig', 'KafkaConfig', 'TofConfig', 'load_config']
