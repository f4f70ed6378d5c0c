"""
Fixed-length, year-indexed time series.

Every territory quantity is stored in a YearSeries allocated for the whole
horizon at setup. A year is written exactly once, in increasing order, and never
revisited after a later year has been computed.
"""

from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd


class SeriesOrderError(RuntimeError):
    """Raised when a series is written out of year order."""


class YearSeries:
    """A numpy-backed series of `horizon` yearly values, written in year order."""

    def __init__(self, name: str, horizon: int):
        self.name = name
        self.horizon = horizon
        self._values = np.zeros(horizon, dtype=float)
        self._last_written = -1

    def set(self, year: int, value: float) -> None:
        if year < 0 or year >= self.horizon:
            raise IndexError(f"Year {year} outside horizon [0, {self.horizon}) for series '{self.name}'")
        if year <= self._last_written:
            raise SeriesOrderError(
                f"Series '{self.name}' already written up to year {self._last_written}; "
                f"cannot write year {year}"
            )
        self._values[year] = float(value)
        self._last_written = year

    def __getitem__(self, year: int) -> float:
        return float(self._values[year])

    def __len__(self) -> int:
        return self.horizon

    @property
    def last_written(self) -> int:
        return self._last_written

    def values(self) -> np.ndarray:
        """Read-only copy of the stored values."""
        view = self._values.copy()
        view.setflags(write=False)
        return view

    def __repr__(self) -> str:
        return f"YearSeries(name={self.name!r}, horizon={self.horizon}, last_written={self._last_written})"


class SeriesStore:
    """Named collection of YearSeries sharing one horizon."""

    def __init__(self, names: Iterable[str], horizon: int):
        self.horizon = horizon
        self._series: Dict[str, YearSeries] = {name: YearSeries(name, horizon) for name in names}

    def __getitem__(self, name: str) -> YearSeries:
        return self._series[name]

    def __contains__(self, name: str) -> bool:
        return name in self._series

    @property
    def names(self) -> List[str]:
        return list(self._series)

    def record(self, year: int, **values: float) -> None:
        """Write several series for one year."""
        for name, value in values.items():
            self._series[name].set(year, value)

    def row(self, year: int) -> Dict[str, float]:
        return {name: series[year] for name, series in self._series.items()}

    def to_frame(self, upto: Optional[int] = None, year_offset: int = 0) -> pd.DataFrame:
        """
        DataFrame with one row per simulated year and one column per series.

        Args:
            upto: Last year index to include (defaults to the full horizon).
            year_offset: Added to the year index to produce calendar years.
        """
        last = self.horizon - 1 if upto is None else upto
        years = list(range(last + 1))
        data = {name: series.values()[: last + 1] for name, series in self._series.items()}
        frame = pd.DataFrame(data, index=pd.Index(years, name="year"))
        frame.insert(0, "calendar_year", [y + year_offset for y in years])
        return frame
