"""MapReduce application whose slow reduce tasks expose workers that quit early."""

from __future__ import annotations

import time

from labkit.mapreduce.types import KeyValue


def map_func(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(filename, "1")`` once per input file."""
    return [KeyValue(filename, "1")]


def reduce_func(key: str, values: list[str]) -> str:
    """Count occurrences, pausing three seconds for some keys."""
    if "sherlock" in key or "tom" in key:
        time.sleep(3)
    return str(len(values))