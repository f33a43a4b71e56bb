from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

Emit = Callable[[Any], Awaitable[None] | None]


class IngestWorker(ABC):
    """
    Ingestion worker contract.

    A worker pulls raw payloads from its sources, normalizes them and hands
    the results to `emit` in arrival order. It never touches engine state.
    """

    @abstractmethod
    async def run(self, emit: Emit) -> None:
        raise NotImplementedError
