"""In-memory key/value server that applies each client's writes at most once."""

from __future__ import annotations

import threading

from labkit.kvsrv.common import GetArgs, GetReply, PutAppendArgs, PutAppendReply


class KVServer:
    """Key/value store reached through ``labkit.labrpc`` as service ``KVServer``.

    Every write carries the client's id and a per-client sequence number.  A
    write whose number is not the next one expected is a retransmission: it
    is not applied again, and a repeated Append gets the reply it got first.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}
        self._client_worder: dict[int, int] = {}
        self._append_returns: dict[int, str] = {}

    def _check_order(self, client: int, order: int) -> bool:
        current = self._client_worder.setdefault(client, 0)
        if order != current + 1:
            return False
        self._client_worder[client] = order
        self._append_returns.pop(client, None)
        return True

    def get(self, args: GetArgs) -> GetReply:
        """Return the value of ``args.key``, or "" if it is absent."""
        with self._lock:
            return GetReply(self._data.get(args.key, ""))

    def put(self, args: PutAppendArgs) -> PutAppendReply:
        """Set ``args.key`` to ``args.value`` unless this write was already applied."""
        with self._lock:
            if self._check_order(args.uid, args.worder):
                self._data[args.key] = args.value
            return PutAppendReply()

    def append(self, args: PutAppendArgs) -> PutAppendReply:
        """Append to ``args.key`` and reply with the value it held before."""
        with self._lock:
            if not self._check_order(args.uid, args.worder):
                return PutAppendReply(self._append_returns.get(args.uid, ""))
            old = self._data.get(args.key, "")
            self._data[args.key] = old + args.value
            self._append_returns[args.uid] = old
            return PutAppendReply(old)


def start_kv_server() -> KVServer:
    """Create an empty server."""
    return KVServer()