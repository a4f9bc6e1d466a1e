from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from loguru import logger


@dataclass
class Timing:
    label: str
    elapsed_ms: float = 0.0


@contextmanager
def timed(label: str, level: str = "INFO") -> Iterator[Timing]:
    """Log how long the block took; the yielded Timing holds it afterwards."""
    timing = Timing(label)
    t0 = time.perf_counter()
    try:
        yield timing
    finally:
        timing.elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.log(level, "{} took {:.2f}ms", label, timing.elapsed_ms)
