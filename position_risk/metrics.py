"""In-process counters and latency histograms for the monitor."""

from __future__ import annotations

import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, DefaultDict, Dict, Iterator, List, Mapping, Optional, Tuple

Labels = Optional[Mapping[str, str]]
SeriesKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def _series(name: str, labels: Labels) -> SeriesKey:
    return name, tuple(sorted((labels or {}).items()))


def _render(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    rendered = ",".join(f'{label}="{value}"' for label, value in labels)
    return f"{name}{{{rendered}}}"


class MetricRegistry:
    """Prometheus-style counters and histograms kept in memory.

    Series are keyed by name plus sorted labels, so ``labels={"a": 1, "b": 2}``
    and ``labels={"b": 2, "a": 1}`` count towards the same series.
    """

    def __init__(self) -> None:
        self.counters: DefaultDict[SeriesKey, float] = defaultdict(float)
        self.histograms: DefaultDict[SeriesKey, List[float]] = defaultdict(list)

    def inc(self, name: str, *, labels: Labels = None, amount: float = 1.0) -> None:
        self.counters[_series(name, labels)] += amount

    def observe(self, name: str, value: float, *, labels: Labels = None) -> None:
        self.histograms[_series(name, labels)].append(value)

    def value(self, name: str, *, labels: Labels = None) -> float:
        return self.counters.get(_series(name, labels), 0.0)

    def total(self, name: str) -> float:
        """Sum a counter across every label combination."""

        return sum(amount for (metric, _), amount in self.counters.items() if metric == name)

    @contextmanager
    def timed(self, name: str, *, labels: Labels = None) -> Iterator[None]:
        """Observe the wall time of the ``with`` block, failures included."""

        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - started, labels=labels)

    def snapshot(self) -> Dict[str, Any]:
        histograms = {}
        for key, samples in self.histograms.items():
            if samples:
                histograms[_render(key)] = {
                    "count": len(samples),
                    "sum": sum(samples),
                    "max": max(samples),
                }
        return {
            "counters": {_render(key): amount for key, amount in self.counters.items()},
            "histograms": histograms,
        }


__all__ = ["MetricRegistry"]
