"""
Abstract Sample Provider interface for pluggable data sources.

Allows swapping the synthetic station network for real monitoring-network
exports without changing downstream code.  Providers hand out Samples that
are already filtered to one pollutant and deduplicated by location.
"""

import csv
import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from models.sample import Sample

logger = logging.getLogger(__name__)


class SampleProvider(ABC):
    """Abstract base class for sample sources.

    Samples are immutable, but the returned lists are fresh copies: callers
    may reorder or filter them freely.
    """

    @abstractmethod
    def pollutants(self) -> List[str]:
        """Return the pollutant keys this provider has samples for."""
        ...

    @abstractmethod
    def get_samples(self, pollutant: str) -> List[Sample]:
        """Return the Samples for one pollutant.

        Raises:
            KeyError: If the provider has no data for ``pollutant``.
        """
        ...

    def get_all_samples(self) -> Dict[str, List[Sample]]:
        """Samples for every pollutant, keyed in ``pollutants()`` order."""
        return {p: self.get_samples(p) for p in self.pollutants()}


def deduplicate_by_location(samples: List[Sample], label: str = "") -> List[Sample]:
    """Keep the first Sample seen at each (x, y); log how many were dropped."""
    seen = set()
    kept = []
    for s in samples:
        if s.location in seen:
            continue
        seen.add(s.location)
        kept.append(s)
    dropped = len(samples) - len(kept)
    if dropped:
        logger.warning("%s: dropped %d duplicate-location sample(s)", label or "samples", dropped)
    return kept


class MockSampleProvider(SampleProvider):
    """Wraps the synthetic station network in data/mock_data.py.

    Args:
        n_stations: Number of stations in the network.
        seed: Random seed for locations and readings.
    """

    def __init__(self, n_stations: Optional[int] = None, seed: Optional[int] = None):
        from data.mock_data import get_station_samples
        kwargs = {}
        if n_stations is not None:
            kwargs["n_stations"] = n_stations
        if seed is not None:
            kwargs["seed"] = seed
        self._samples = get_station_samples(**kwargs)

    def pollutants(self) -> List[str]:
        return list(self._samples)

    def get_samples(self, pollutant: str) -> List[Sample]:
        return list(self._samples[pollutant])


class FileSampleProvider(SampleProvider):
    """Load station readings from a long-format CSV on disk.

    The file must have columns ``pollutant,x,y,value``; any other columns
    are ignored.  Rows with non-finite or unparsable values are dropped,
    and duplicate locations within a pollutant keep their first row.

    Args:
        path: Path to the CSV file.

    Raises:
        ValueError: If required columns are missing or no usable rows remain.
        FileNotFoundError: If the file does not exist.
    """

    _REQUIRED_COLUMNS = {"pollutant", "x", "y", "value"}

    def __init__(self, path: str):
        self.path = path
        self._samples = self._load(path)

    @classmethod
    def _load(cls, path: str) -> Dict[str, List[Sample]]:
        with open(path, newline="") as f:
            reader = csv.DictReader(f)
            missing = cls._REQUIRED_COLUMNS - set(reader.fieldnames or [])
            if missing:
                raise ValueError(f"CSV missing required columns {sorted(missing)}: {path}")
            raw: Dict[str, List[Sample]] = {}
            skipped = 0
            for row in reader:
                try:
                    x, y, v = float(row["x"]), float(row["y"]), float(row["value"])
                except (TypeError, ValueError):
                    skipped += 1
                    continue
                if not all(math.isfinite(c) for c in (x, y, v)):
                    skipped += 1
                    continue
                name = row["pollutant"].strip().lower()
                raw.setdefault(name, []).append(Sample(x=x, y=y, value=v))

        if skipped:
            logger.warning("%s: skipped %d row(s) with missing or non-finite values", path, skipped)
        if not raw:
            raise ValueError(f"CSV contains no usable sample rows: {path}")

        return {name: deduplicate_by_location(rows, f"{path} [{name}]") for name, rows in raw.items()}

    def pollutants(self) -> List[str]:
        return list(self._samples)

    def get_samples(self, pollutant: str) -> List[Sample]:
        return list(self._samples[pollutant])
