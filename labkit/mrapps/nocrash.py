"""The crash application's map and reduce functions, without the failures."""

from __future__ import annotations

from labkit.mapreduce.types import KeyValue


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


def map_func(filename: str, contents: str) -> list[KeyValue]:
    return [
        KeyValue("a", filename),
        KeyValue("b", str(_byte_len(filename))),
        KeyValue("c", str(_byte_len(contents))),
        KeyValue("d", "xyzzy"),
    ]


def reduce_func(key: str, values: list[str]) -> str:
    return " ".join(sorted(values))