"""Client for the single-server key/value service."""

from __future__ import annotations

import secrets

from labkit.kvsrv.common import GetArgs, PutAppendArgs
from labkit.labrpc import ClientEnd, RPCError


def nrand() -> int:
    """Random non-negative 62-bit integer, used as a client id."""
    return secrets.randbelow(1 << 62)


class Clerk:
    """Issues Get/Put/Append to one server, retrying until a reply arrives."""

    def __init__(self, server: ClientEnd) -> None:
        self._server = server
        self.uid = nrand()
        self._worder = 0

    def _call(self, method: str, args: object):
        while True:
            try:
                return self._server.call(f"KVServer.{method}", args)
            except RPCError:
                continue

    def get(self, key: str) -> str:
        """Fetch the value of *key*; "" if the key does not exist."""
        return self._call("get", GetArgs(key=key, uid=self.uid)).value

    def put_append(self, key: str, value: str, op: str) -> str:
        """Send a write; *op* is ``"put"`` or ``"append"``. Returns the reply value."""
        if op not in ("put", "append"):
            raise ValueError(f"unknown operation {op!r}")
        self._worder += 1
        args = PutAppendArgs(key=key, value=value, uid=self.uid, worder=self._worder)
        return self._call(op, args).value

    def put(self, key: str, value: str) -> None:
        self.put_append(key, value, "put")

    def append(self, key: str, value: str) -> str:
        """Append *value* to *key* and return the value it held before."""
        return self.put_append(key, value, "append")