from __future__ import annotations

from typing import Any, AsyncIterator, Iterator, Mapping, Protocol, runtime_checkable

Raw = Mapping[str, Any]


@runtime_checkable
class Source(Protocol):
    """Synchronous source of raw upstream payloads (replay files, polled REST)."""

    def __iter__(self) -> Iterator[Raw]:
        ...


@runtime_checkable
class AsyncSource(Protocol):
    """Asynchronous source of raw upstream payloads (push feeds)."""

    def __aiter__(self) -> AsyncIterator[Raw]:
        ...
