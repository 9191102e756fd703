# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2025 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

from collections.abc import Iterable


class SourceRegistry:
    """
    Opt-in set of accepted source names.

    An empty registry accepts every source. Once a name is registered, messages from
    sources that are not registered are ignored.
    """

    def __init__(self, sources: Iterable[str] = ()) -> None:
        self._sources: set[str] = set()
        for name in sources:
            self.register(name)

    def register(self, name: str) -> None:
        # Empty names denote the default source and cannot be used for filtering.
        if not name:
            return
        self._sources.add(name)

    def is_accepted(self, name: str) -> bool:
        return not self._sources or name in self._sources

    @property
    def is_active(self) -> bool:
        return bool(self._sources)

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self):
        return iter(sorted(self._sources))
