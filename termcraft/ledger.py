"""Bounded usage ledger kept by each rate limiter."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, List, Optional


DEFAULT_LEDGER_SIZE = 1000


@dataclass(frozen=True)
class UsageRecord:
    """One entry in the usage ledger.  Never modified once appended."""

    timestamp: float
    kind: str
    token_delta: int
    model_name: str
    success: bool = True
    error_detail: Optional[str] = None


class UsageLedger:
    """Append-only record of recent limiter events.

    Only the most recent ``max_records`` entries are kept; older ones
    are evicted first.
    """

    def __init__(self, max_records: int = DEFAULT_LEDGER_SIZE) -> None:
        if max_records <= 0:
            raise ValueError("max_records must be > 0")
        self._records: Deque[UsageRecord] = deque(maxlen=max_records)

    @property
    def max_records(self) -> int:
        return self._records.maxlen

    def append(self, record: UsageRecord) -> None:
        self._records.append(record)

    def records(self) -> List[UsageRecord]:
        """Return a copy of the retained records, oldest first."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[UsageRecord]:
        return iter(list(self._records))
