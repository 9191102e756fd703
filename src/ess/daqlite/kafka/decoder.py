# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
"""
Decoding of detector event and pre-binned histogram messages.

Three flatbuffer schemas are supported:

- ``ev44``: events with pixel ids and times of flight,
- ``ev42``: legacy events, same content with ``detector_id`` for the pixel ids,
- ``da00``: a pre-binned time-of-flight histogram. The first variable holds the bin
  edges, the second the bin values.

The schema is identified from the file identifier embedded in the buffer before any
field is read. Deserialisation reads are bounds-checked, so truncated or corrupted
buffers raise :py:class:`MalformedMessageError` instead of reading past the end.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import streaming_data_types.utils
from streaming_data_types import dataarray_da00, eventdata_ev42, eventdata_ev44
from streaming_data_types.exceptions import WrongSchemaException

from ..config.models import TofConfig
from ..core.sources import SourceRegistry

EV44 = eventdata_ev44.FILE_IDENTIFIER.decode()
EV42 = eventdata_ev42.FILE_IDENTIFIER.decode()
DA00 = dataarray_da00.FILE_IDENTIFIER.decode()
SUPPORTED_SCHEMAS = (EV44, EV42, DA00)

# Root table offset plus four byte file identifier.
_HEADER_SIZE = 8


class DecodeError(Exception):
    """A message with a known schema that cannot be used."""


class MalformedMessageError(DecodeError):
    """Truncated buffer, inconsistent array lengths or unsupported content."""


class BinEdgeMismatchError(MalformedMessageError):
    """Pre-binned message where the number of edges is not the number of bins + 1."""


class OutOfRangeError(DecodeError):
    """Pre-binned message extending beyond the configured maximum time-of-flight."""


class RejectedSourceError(DecodeError):
    """Message from a source that is not in the active source registry."""


@dataclass(frozen=True, slots=True, kw_only=True)
class EventBatch:
    """Parallel arrays of pixel ids and raw times of flight from one message."""

    source_name: str
    pixel_id: npt.NDArray[np.integer]
    time_of_flight: npt.NDArray[np.integer]

    def __len__(self) -> int:
        return len(self.pixel_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class BinnedHistogram:
    """Time-of-flight histogram binned by the producer."""

    source_name: str
    bin_edges: npt.NDArray[np.int64]
    values: npt.NDArray[np.int64]


def identify_schema(buffer: bytes) -> str:
    """
    Return the schema identifier of ``buffer``.

    Raises
    ------
    WrongSchemaException:
        If the buffer is too short or the schema is not supported.
    """
    if len(buffer) < _HEADER_SIZE:
        raise WrongSchemaException(
            f"Buffer of {len(buffer)} bytes is too short to carry a schema identifier"
        )
    try:
        schema = streaming_data_types.utils.get_schema(buffer)
    except UnicodeDecodeError:
        schema = None
    if schema not in SUPPORTED_SCHEMAS:
        raise WrongSchemaException(
            f"Unexpected schema '{schema}'. Expected one of: {list(SUPPORTED_SCHEMAS)}"
        )
    return schema


def _as_array(values: object) -> np.ndarray:
    if values is None:
        return np.zeros(0, dtype=np.int64)
    return np.asarray(values)


def _check_parallel(source_name: str, pixel_id: np.ndarray, tof: np.ndarray) -> None:
    if pixel_id.size != tof.size:
        raise MalformedMessageError(
            f"Source '{source_name}': {pixel_id.size} pixel ids but "
            f"{tof.size} times of flight"
        )


def deserialise_ev44(buffer: bytes) -> EventBatch:
    try:
        ev44 = eventdata_ev44.deserialise_ev44(buffer)
    except WrongSchemaException:
        raise
    except Exception as e:
        raise MalformedMessageError(f"Invalid ev44 buffer: {e}") from e
    pixel_id = _as_array(ev44.pixel_id)
    tof = _as_array(ev44.time_of_flight)
    _check_parallel(ev44.source_name, pixel_id, tof)
    return EventBatch(
        source_name=ev44.source_name, pixel_id=pixel_id, time_of_flight=tof
    )


def deserialise_ev42(buffer: bytes) -> EventBatch:
    try:
        ev42 = eventdata_ev42.deserialise_ev42(buffer)
    except WrongSchemaException:
        raise
    except Exception as e:
        raise MalformedMessageError(f"Invalid ev42 buffer: {e}") from e
    pixel_id = _as_array(ev42.detector_id)
    tof = _as_array(ev42.time_of_flight)
    _check_parallel(ev42.source_name, pixel_id, tof)
    return EventBatch(
        source_name=ev42.source_name, pixel_id=pixel_id, time_of_flight=tof
    )


def _integer_values(variable: dataarray_da00.Variable) -> npt.NDArray[np.int64]:
    data = np.asarray(variable.data)
    if not np.issubdtype(data.dtype, np.integer):
        raise MalformedMessageError(
            f"Variable '{variable.name}' has unsupported dtype {data.dtype}"
        )
    return data.reshape(-1).astype(np.int64)


def deserialise_da00(buffer: bytes) -> BinnedHistogram:
    try:
        da00 = dataarray_da00.deserialise_da00(buffer)
    except WrongSchemaException:
        raise
    except Exception as e:
        raise MalformedMessageError(f"Invalid da00 buffer: {e}") from e
    if len(da00.data) < 2:
        raise MalformedMessageError(
            f"Source '{da00.source_name}': expected bin edges and values, "
            f"got {len(da00.data)} variable(s)"
        )
    return BinnedHistogram(
        source_name=da00.source_name,
        bin_edges=_integer_values(da00.data[0]),
        values=_integer_values(da00.data[1]),
    )


_DESERIALISERS = {
    EV44: deserialise_ev44,
    EV42: deserialise_ev42,
    DA00: deserialise_da00,
}


class MessageDecoder:
    """
    Decodes raw buffers and applies the acceptance policy.

    When the source registry is empty, every source is accepted and all data is
    keyed under the default source name ``''``. Otherwise only registered sources
    are accepted and keep their declared names.

    Parameters
    ----------
    registry:
        Accepted source names.
    tof:
        Time-of-flight configuration, used to reject pre-binned histograms extending
        beyond the maximum time-of-flight.
    """

    def __init__(self, *, registry: SourceRegistry, tof: TofConfig) -> None:
        self._registry = registry
        self._max_time = tof.max_value
        self._scale = tof.time_scale

    def resolve_source(self, source_name: str) -> str:
        if not self._registry.is_active:
            return ''
        if not self._registry.is_accepted(source_name):
            raise RejectedSourceError(f"Source '{source_name}' is not registered")
        return source_name

    def decode(self, buffer: bytes) -> EventBatch | BinnedHistogram:
        """
        Decode ``buffer`` into events or a pre-binned histogram.

        Raises
        ------
        WrongSchemaException:
            If the schema is unknown.
        DecodeError:
            If the message is malformed, out of range or from a rejected source.
        """
        decoded = _DESERIALISERS[identify_schema(buffer)](buffer)
        source = self.resolve_source(decoded.source_name)
        if isinstance(decoded, BinnedHistogram):
            self._check_bins(decoded)
        return dataclasses.replace(decoded, source_name=source)

    def _check_bins(self, histogram: BinnedHistogram) -> None:
        # Edges describe N + 1 boundaries of N bins.
        if histogram.bin_edges.size != histogram.values.size + 1:
            raise BinEdgeMismatchError(
                f"Source '{histogram.source_name}': {histogram.bin_edges.size} "
                f"bin edges for {histogram.values.size} bins"
            )
        max_edge = int(histogram.bin_edges.max())
        if max_edge // self._scale > self._max_time:
            raise OutOfRangeError(
                f"Source '{histogram.source_name}': maximum bin edge {max_edge} "
                f"exceeds maximum time-of-flight {self._max_time} "
                f"(scale {self._scale})"
            )
