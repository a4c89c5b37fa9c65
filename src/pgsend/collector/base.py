"""
Base collector interface.

A collector is anything that can write one JSON snapshot to a given path.
The send loop only cares that the file appears; where the data comes
from (pgmetrics, mock) is the collector's business.
"""

from abc import ABC, abstractmethod
from pathlib import Path


class CollectionError(RuntimeError):
    """The collector failed to produce a snapshot."""


class SnapshotCollector(ABC):
    """Interface for all snapshot sources."""

    @abstractmethod
    def collect(self, destination: Path) -> None:
        """Write one snapshot to `destination`. Raises CollectionError on failure."""
        ...

    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        ...
