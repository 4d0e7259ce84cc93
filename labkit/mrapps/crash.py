"""MapReduce application that sometimes crashes and sometimes stalls.

Used to check that the framework recovers from failed and slow workers.
"""

from __future__ import annotations

import os
import secrets
import time

from labkit.mapreduce.types import KeyValue


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


def maybe_crash() -> None:
    """Exit the process a third of the time; stall up to ten seconds another third."""
    roll = secrets.randbelow(1000)
    if roll < 330:
        os._exit(1)
    elif roll < 660:
        time.sleep(secrets.randbelow(10_000) / 1000)


def map_func(filename: str, contents: str) -> list[KeyValue]:
    maybe_crash()
    return [
        KeyValue("a", filename),
        KeyValue("b", str(_byte_len(filename))),
        KeyValue("c", str(_byte_len(contents))),
        KeyValue("d", "xyzzy"),
    ]


def reduce_func(key: str, values: list[str]) -> str:
    maybe_crash()
    return " ".join(sorted(values))