"""MapReduce application that checks reduce tasks run in parallel."""

from __future__ import annotations

import os
import re
import time
from pathlib import Path

from labkit.mapreduce.types import KeyValue


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def nparallel(phase: str) -> int:
    """Count live workers in *phase*, this one included, via marker files."""
    marker = Path(f"mr-worker-{phase}-{os.getpid()}")
    marker.write_bytes(b"x")
    pattern = re.compile(rf"mr-worker-{re.escape(phase)}-([+-]?\d+)")
    alive = 0
    for name in os.listdir("."):
        match = pattern.match(name)
        if match and _is_alive(int(match.group(1))):
            alive += 1
    time.sleep(1)
    marker.unlink()
    return alive


def map_func(filename: str, contents: str) -> list[KeyValue]:
    """Emit one pair for each of ten fixed keys."""
    return [KeyValue(key, "1") for key in "abcdefghij"]


def reduce_func(key: str, values: list[str]) -> str:
    """Report how many reduce tasks were running at the same time."""
    return str(nparallel("reduce"))