"""Ordered set of backends; the first registered one is the primary."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Tuple

from feedmirror.storage.models import BackendDescriptor


class BackendRegistry:
    """Immutable, non-empty sequence of named backends.

    Order matters: reads try ``primary`` first, then ``fallbacks`` in
    registration order.
    """

    def __init__(self, backends: Iterable[BackendDescriptor]):
        backends = tuple(backends)
        if not backends:
            raise ValueError("BackendRegistry requires at least one backend")

        seen = set()
        for backend in backends:
            if backend.name in seen:
                raise ValueError(f"Duplicate backend name: {backend.name!r}")
            seen.add(backend.name)

        self._backends: Tuple[BackendDescriptor, ...] = backends

    @property
    def primary(self) -> BackendDescriptor:
        return self._backends[0]

    @property
    def fallbacks(self) -> Tuple[BackendDescriptor, ...]:
        return self._backends[1:]

    @property
    def names(self) -> List[str]:
        return [b.name for b in self._backends]

    def __iter__(self) -> Iterator[BackendDescriptor]:
        return iter(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    def __repr__(self):
        return f"<BackendRegistry primary={self.primary.name!r} fallbacks={len(self.fallbacks)}>"
