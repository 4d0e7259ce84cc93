"""MapReduce worker: fetches tasks from the coordinator and runs them."""

from __future__ import annotations

import json
import os
import socket
import sys
import tempfile
import time
from itertools import groupby
from operator import attrgetter
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Sequence

from labkit.labgob import LabDecoder, LabEncoder, LabGobError
from labkit.mapreduce.coordinator import ALL_TASKS_DONE, NO_TASK_FREE
from labkit.mapreduce.plugins import load_plugin
from labkit.mapreduce.types import (
    CompleteArgs,
    ExampleArgs,
    KeyValue,
    coordinator_sock,
    ihash,
)

MapFunc = Callable[[str, str], "list[KeyValue]"]
ReduceFunc = Callable[[str, "list[str]"], str]

_RETRY_PAUSE = 0.05
_by_key = attrgetter("key")


class CallError(Exception):
    """The coordinator received the call but reported an error, or replied badly."""


def call(rpcname: str, args: Any = None) -> Any:
    """Send one RPC such as ``"Coordinator.map_task"`` and return its reply.

    Raises ``OSError`` if the coordinator cannot be reached and ``CallError``
    if the call failed on its side.
    """
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(coordinator_sock())
        with sock.makefile("wb") as wfile:
            encoder = LabEncoder(wfile)
            encoder.encode(rpcname)
            encoder.encode(args)
        with sock.makefile("rb") as rfile:
            decoder = LabDecoder(rfile)
            try:
                ok = decoder.decode(bool)
                value = decoder.decode()
            except (EOFError, LabGobError) as exc:
                raise CallError(f"{rpcname}: bad reply: {exc}") from exc
    if not ok:
        raise CallError(value)
    return value


def call_example() -> int | None:
    """Send the example RPC; print and return the reply's ``y`` (100 expected)."""
    try:
        reply = call("Coordinator.example", ExampleArgs(x=99))
    except CallError:
        print("call failed!")
        return None
    print(f"reply.Y {reply.y}")
    return reply.y


def _fetch_map_task() -> tuple[int, str]:
    try:
        reply = call("Coordinator.map_task", None)
    except CallError as exc:
        print(f"call map task failed: {exc}")
        return NO_TASK_FREE, ""
    return reply.id, reply.filename


def _fetch_reduce_task() -> int:
    try:
        reply = call("Coordinator.reduce_task", None)
    except CallError as exc:
        print(f"call reduce task failed: {exc}")
        return NO_TASK_FREE
    return reply.id


def _fetch_count(rpcname: str) -> int:
    return call(rpcname, None).num


def _report_complete(rpcname: str, task_id: int) -> None:
    try:
        call(rpcname, CompleteArgs(id=task_id))
    except CallError as exc:
        print(f"call {rpcname} failed: {exc}")


def _temp_file(prefix: str):
    return tempfile.NamedTemporaryFile(
        "w",
        dir=".",
        prefix=prefix,
        delete=False,
        encoding="utf-8",
        errors="surrogateescape",
        newline="",
    )


def _run_map(mapf: MapFunc, map_id: int, filename: str, n_reduce: int) -> None:
    content = Path(filename).read_text(encoding="utf-8", errors="surrogateescape")
    buckets = {}
    try:
        for kv in mapf(filename, content):
            reduce_id = ihash(kv.key) % n_reduce
            out = buckets.get(reduce_id)
            if out is None:
                out = buckets[reduce_id] = _temp_file(f"mr-{map_id}-{reduce_id}")
            out.write(json.dumps({"Key": kv.key, "Value": kv.value}) + "\n")
    finally:
        for out in buckets.values():
            out.close()
    for reduce_id, out in buckets.items():
        os.replace(out.name, f"mr-{map_id}-{reduce_id}")


def _read_pairs(lines: Iterable[str]) -> Iterator[KeyValue]:
    for line in lines:
        try:
            obj = json.loads(line)
            kv = KeyValue(obj["Key"], obj["Value"])
        except (ValueError, KeyError, TypeError):
            return
        yield kv


def _run_reduce(reducef: ReduceFunc, reduce_id: int, n_map: int) -> None:
    pairs: list[KeyValue] = []
    for map_id in range(n_map):
        try:
            source = open(f"mr-{map_id}-{reduce_id}", encoding="utf-8")
        except OSError:
            continue
        with source:
            pairs.extend(_read_pairs(source))
    pairs.sort(key=_by_key)

    final = f"mr-out-{reduce_id}"
    with _temp_file(final) as out:
        for key, group in groupby(pairs, key=_by_key):
            out.write(f"{key} {reducef(key, [kv.value for kv in group])}\n")
    os.replace(out.name, final)


def worker(mapf: MapFunc, reducef: ReduceFunc) -> None:
    """Run map tasks until all are done, then reduce tasks until all are done.

    Intermediate files ``mr-M-R`` and outputs ``mr-out-R`` go to the
    current directory.
    """
    n_reduce = _fetch_count("Coordinator.n_reduce")
    n_map = _fetch_count("Coordinator.n_map")

    while True:
        map_id, filename = _fetch_map_task()
        if map_id == ALL_TASKS_DONE:
            break
        if map_id == NO_TASK_FREE:
            time.sleep(_RETRY_PAUSE)
            continue
        _run_map(mapf, map_id, filename, n_reduce)
        _report_complete("Coordinator.complete_map", map_id)

    while True:
        reduce_id = _fetch_reduce_task()
        if reduce_id == ALL_TASKS_DONE:
            break
        if reduce_id == NO_TASK_FREE:
            time.sleep(_RETRY_PAUSE)
            continue
        _run_reduce(reducef, reduce_id, n_map)
        _report_complete("Coordinator.complete_reduce", reduce_id)


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry: ``mrworker app.so``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: mrworker xxx.so", file=sys.stderr)
        return 1
    try:
        mapf, reducef = load_plugin(args[0])
    except LookupError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        worker(mapf, reducef)
    except (OSError, CallError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())