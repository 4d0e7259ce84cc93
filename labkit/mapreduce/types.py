"""Records exchanged between the MapReduce coordinator and its workers."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class KeyValue:
    """One intermediate pair emitted by a map function."""

    key: str
    value: str


@dataclass
class ExampleArgs:
    x: int = 0


@dataclass
class ExampleReply:
    y: int = 0


@dataclass
class MapFetchReply:
    """A map assignment; ``id`` is -1 when none is free, -2 when all are done."""

    id: int = 0
    filename: str = ""


@dataclass
class ReduceFetchReply:
    """A reduce assignment; ``id`` is -1 when none is free, -2 when all are done."""

    id: int = 0


@dataclass
class NumFetchReply:
    num: int = 0


@dataclass
class CompleteArgs:
    id: int = 0


_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def ihash(key: str) -> int:
    """Non-negative FNV-1a hash of *key*, used to pick a reduce bucket."""
    h = _FNV_OFFSET
    for byte in key.encode("utf-8", "surrogateescape"):
        h = ((h ^ byte) * _FNV_PRIME) & 0xFFFFFFFF
    return h & 0x7FFFFFFF


def coordinator_sock() -> str:
    """Per-user UNIX-domain socket path for the coordinator."""
    return "/var/tmp/5840-mr-" + str(os.getuid())