"""Run a MapReduce application in one process, without a coordinator."""

from __future__ import annotations

import sys
from itertools import groupby
from operator import attrgetter
from pathlib import Path
from typing import Callable, Iterable, Sequence

from labkit.mapreduce.plugins import load_plugin
from labkit.mapreduce.types import KeyValue

_by_key = attrgetter("key")


def run_sequential(
    mapf: Callable[[str, str], list[KeyValue]],
    reducef: Callable[[str, list[str]], str],
    filenames: Iterable[str],
    output: str | Path = "mr-out-0",
) -> Path:
    """Map every input file, reduce each distinct key, write ``key value`` lines.

    Returns the path of the output file.
    """
    intermediate: list[KeyValue] = []
    for filename in filenames:
        content = Path(filename).read_text(encoding="utf-8", errors="surrogateescape")
        intermediate.extend(mapf(filename, content))

    intermediate.sort(key=_by_key)

    out_path = Path(output)
    with out_path.open("w", encoding="utf-8", errors="surrogateescape", newline="") as out:
        for key, group in groupby(intermediate, key=_by_key):
            out.write(f"{key} {reducef(key, [kv.value for kv in group])}\n")
    return out_path


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry: ``mrsequential app.so inputfiles...``; writes ``mr-out-0``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print("Usage: mrsequential xxx.so inputfiles...", file=sys.stderr)
        return 1
    try:
        mapf, reducef = load_plugin(args[0])
    except LookupError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        run_sequential(mapf, reducef, args[1:])
    except OSError as exc:
        print(f"cannot read {exc.filename}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())