from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from ingestion.contracts.tick import Tick, TickKind


class Normalizer(ABC):
    """
    raw upstream payload -> canonical Tick(s)

    Normalizers are pure: no IO, no state carried between calls.
    Malformed payloads raise ValueError.
    """

    kind: TickKind

    @abstractmethod
    def normalize(self, *, raw: Mapping[str, Any]) -> Tick | list[Tick] | None:
        raise NotImplementedError
