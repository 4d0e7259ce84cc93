"""Lookup of MapReduce applications by name."""

from __future__ import annotations

from pathlib import PurePath
from typing import Callable

from labkit.mapreduce.types import KeyValue
from labkit.mrapps import crash, early_exit, indexer, jobcount, mtiming, nocrash, rtiming, wc

MapFunc = Callable[[str, str], "list[KeyValue]"]
ReduceFunc = Callable[[str, "list[str]"], str]

_APPS = {
    module.__name__.rpartition(".")[2]: (module.map_func, module.reduce_func)
    for module in (wc, indexer, crash, nocrash, early_exit, jobcount, mtiming, rtiming)
}


def load_plugin(name: str) -> tuple[MapFunc, ReduceFunc]:
    """Return the map and reduce functions of an application.

    *name* may be a bare name such as ``"wc"`` or a path such as
    ``"../mrapps/wc.so"``; only the file stem is used.
    """
    stem = PurePath(name).stem
    try:
        return _APPS[stem]
    except KeyError:
        raise LookupError(f"cannot load plugin {name}") from None