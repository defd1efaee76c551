"""
Lightweight timing spans for sync steps.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator


class PerformanceMonitor:
    def __init__(self) -> None:
        self.spans: dict[str, float] = {}

    @contextmanager
    def span(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.spans[name] = self.spans.get(name, 0.0) + (time.perf_counter() - start)

    def snapshot(self) -> dict[str, float]:
        return {name: round(seconds, 4) for name, seconds in self.spans.items()}
