"""MapReduce coordinator: hands map and reduce tasks out to worker processes.

Workers reach the coordinator over a UNIX-domain socket.  Each connection
carries one call: the method name and its argument, framed with
``labkit.labgob``; the reply is a success flag followed by either the
handler's result or an error message.
"""

from __future__ import annotations

import contextlib
import enum
import os
import socketserver
import sys
import threading
import time
from typing import Any, Sequence

from labkit import labgob
from labkit.labgob import LabDecoder, LabEncoder, LabGobError
from labkit.mapreduce.types import (
    CompleteArgs,
    ExampleArgs,
    ExampleReply,
    KeyValue,
    MapFetchReply,
    NumFetchReply,
    ReduceFetchReply,
    coordinator_sock,
)

TASK_TIMEOUT = 10.0
NO_TASK_FREE = -1
ALL_TASKS_DONE = -2
SERVICE_NAME = "Coordinator"

for _cls in (
    KeyValue,
    ExampleArgs,
    ExampleReply,
    MapFetchReply,
    ReduceFetchReply,
    NumFetchReply,
    CompleteArgs,
):
    labgob.register(_cls)


class TaskState(enum.IntEnum):
    """Life cycle of one map or reduce task."""

    NONE = 0
    IDLE = 1
    PROCESSING = 2
    COMPLETE = 3


_RPC_METHODS = frozenset(
    {
        "map_task",
        "reduce_task",
        "complete_map",
        "complete_reduce",
        "n_reduce",
        "n_map",
        "example",
    }
)


class _Handler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        decoder = LabDecoder(self.rfile)
        encoder = LabEncoder(self.wfile)
        try:
            method = decoder.decode(str)
            args = decoder.decode()
        except (EOFError, LabGobError):
            return
        try:
            reply = self.server.coordinator._dispatch(method, args)
        except Exception as exc:
            encoder.encode(False)
            encoder.encode(f"{type(exc).__name__}: {exc}")
        else:
            encoder.encode(True)
            encoder.encode(reply)


class _Server(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True

    def __init__(self, path: str, coordinator: Coordinator) -> None:
        self.coordinator = coordinator
        super().__init__(path, _Handler)


class Coordinator:
    """Tracks which tasks are idle, running or complete.

    A task handed out and not reported complete within *task_timeout*
    seconds becomes idle again, so another worker can take it.
    """

    def __init__(
        self,
        files: Sequence[str],
        n_reduce: int,
        *,
        task_timeout: float = TASK_TIMEOUT,
        sockname: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._map_files = list(files)
        self._n_map = len(self._map_files)
        self._n_reduce = n_reduce
        self._map_status = [TaskState.IDLE] * self._n_map
        self._reduce_status = [TaskState.IDLE] * n_reduce
        self._map_done = False
        self._reduce_done = False
        self._task_timeout = task_timeout
        self.sockname = sockname if sockname is not None else coordinator_sock()
        self._server: _Server | None = None
        self._thread: threading.Thread | None = None
        self._timers: list[threading.Timer] = []

    def __enter__(self) -> Coordinator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _dispatch(self, rpcname: str, args: Any) -> Any:
        service, _, method = rpcname.rpartition(".")
        if service != SERVICE_NAME or method not in _RPC_METHODS:
            raise LookupError(
                f"unknown method {rpcname}; expecting one of "
                f"{sorted(SERVICE_NAME + '.' + m for m in _RPC_METHODS)}"
            )
        return getattr(self, method)(args)

    @staticmethod
    def _assign(statuses: list[TaskState]) -> int:
        for index, state in enumerate(statuses):
            if state is TaskState.IDLE:
                statuses[index] = TaskState.PROCESSING
                return index
        return NO_TASK_FREE

    def _watch(self, statuses: list[TaskState], index: int) -> None:
        timer = threading.Timer(self._task_timeout, self._expire, (statuses, index))
        timer.daemon = True
        with self._lock:
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()

    def _expire(self, statuses: list[TaskState], index: int) -> None:
        with self._lock:
            if statuses[index] is not TaskState.COMPLETE:
                statuses[index] = TaskState.IDLE

    @staticmethod
    def _complete(statuses: list[TaskState], task_id: int) -> bool:
        if not 0 <= task_id < len(statuses):
            raise IndexError(f"no task {task_id}")
        statuses[task_id] = TaskState.COMPLETE
        return all(state is TaskState.COMPLETE for state in statuses)

    def map_task(self, args: Any = None) -> MapFetchReply:
        """Assign an idle map task; id -1 if none is free, -2 if all are done."""
        with self._lock:
            if self._map_done:
                return MapFetchReply(id=ALL_TASKS_DONE)
            index = self._assign(self._map_status)
            if index == NO_TASK_FREE:
                return MapFetchReply(id=NO_TASK_FREE)
            reply = MapFetchReply(id=index, filename=self._map_files[index])
        self._watch(self._map_status, index)
        return reply

    def reduce_task(self, args: Any = None) -> ReduceFetchReply:
        """Assign an idle reduce task; id -1 if none is free, -2 if all are done."""
        with self._lock:
            if self._reduce_done:
                return ReduceFetchReply(id=ALL_TASKS_DONE)
            index = self._assign(self._reduce_status)
        if index == NO_TASK_FREE:
            return ReduceFetchReply(id=NO_TASK_FREE)
        self._watch(self._reduce_status, index)
        return ReduceFetchReply(id=index)

    def complete_map(self, args: CompleteArgs) -> None:
        with self._lock:
            self._map_done = self._complete(self._map_status, args.id)

    def complete_reduce(self, args: CompleteArgs) -> None:
        with self._lock:
            self._reduce_done = self._complete(self._reduce_status, args.id)

    def n_reduce(self, args: Any = None) -> NumFetchReply:
        with self._lock:
            return NumFetchReply(num=self._n_reduce)

    def n_map(self, args: Any = None) -> NumFetchReply:
        with self._lock:
            return NumFetchReply(num=self._n_map)

    def example(self, args: ExampleArgs) -> ExampleReply:
        return ExampleReply(y=args.x + 1)

    def serve(self) -> None:
        """Listen for workers on the coordinator socket in a background thread."""
        if self._server is not None:
            return
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.sockname)
        self._server = _Server(self.sockname, self)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop listening, remove the socket and cancel pending task timers."""
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        server, self._server = self._server, None
        if server is not None:
            server.shutdown()
            server.server_close()
            with contextlib.suppress(FileNotFoundError):
                os.remove(self.sockname)

    def done(self) -> bool:
        """True once every reduce task is complete."""
        with self._lock:
            return self._reduce_done


def make_coordinator(files: Sequence[str], n_reduce: int) -> Coordinator:
    """Create a coordinator for *files* with *n_reduce* reduce tasks and serve it."""
    coordinator = Coordinator(files, n_reduce)
    coordinator.serve()
    return coordinator


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry: ``mrcoordinator inputfiles...``."""
    files = list(sys.argv[1:] if argv is None else argv)
    if not files:
        print("Usage: mrcoordinator inputfiles...", file=sys.stderr)
        return 1
    coordinator = make_coordinator(files, 10)
    try:
        while not coordinator.done():
            time.sleep(1)
        time.sleep(1)
    finally:
        coordinator.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())