# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from .consumer import (
    BrokerClient,
    BrokerConnectionError,
    KafkaBrokerClient,
    KafkaMessage,
    ReceiveStatus,
    classify,
    make_consumer_from_config,
)
from .decoder import (
    BinnedHistogram,
    DecodeError,
    EventBatch,
    MalformedMessageError,
    MessageDecoder,
    OutOfRangeError,
    RejectedSourceError,
)

__all__ = [
    'BinnedHistogram',
    'BrokerClient',
    'BrokerConnectionError',
    'DecodeError',
    'EventBatch',
    'KafkaBrokerClient',
    'KafkaMessage',
    'MalformedMessageError',
    'MessageDecoder',
    'OutOfRangeError',
    'ReceiveStatus',
    'RejectedSourceError',
    'classify',
    'make_consumer_from_config',
]
