"""Inverted-index application for MapReduce."""

from __future__ import annotations

from itertools import groupby

from labkit.mapreduce.types import KeyValue


def _words(text: str) -> list[str]:
    return ["".join(run) for is_letter, run in groupby(text, key=str.isalpha) if is_letter]


def map_func(document: str, value: str) -> list[KeyValue]:
    """Emit ``(word, document)`` once for each distinct word of *value*."""
    return [KeyValue(word, document) for word in dict.fromkeys(_words(value))]


def reduce_func(key: str, values: list[str]) -> str:
    """Return the document count followed by the sorted, comma-joined documents."""
    docs = sorted(values)
    return f"{len(docs)} {','.join(docs)}"