"""Argument and reply records for the single-server key/value service."""

from __future__ import annotations

from dataclasses import dataclass

from labkit import labgob


@dataclass
class PutAppendArgs:
    """A Put or Append request; ``worder`` numbers a client's writes from 1."""

    key: str = ""
    value: str = ""
    uid: int = 0
    worder: int = 0


@dataclass
class PutAppendReply:
    """For Append, the value the key held before the append."""

    value: str = ""


@dataclass
class GetArgs:
    key: str = ""
    uid: int = 0


@dataclass
class GetReply:
    value: str = ""


for _cls in (PutAppendArgs, PutAppendReply, GetArgs, GetReply):
    labgob.register(_cls)