"""Test harness that runs a key/value server behind a simulated network."""

from __future__ import annotations

import base64
import secrets
import threading
import time
from dataclasses import dataclass

from labkit.kvsrv.client import Clerk
from labkit.kvsrv.server import KVServer, start_kv_server
from labkit.labrpc import Network, Server, Service

SERVER_ID = 0
TIME_LIMIT = 120.0


def _randstring(n: int) -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(2 * n)).decode("ascii")[:n]


@dataclass(frozen=True)
class RunStats:
    """Figures for one test run, between ``begin`` and ``end``."""

    seconds: float
    rpcs: int
    ops: int


class Harness:
    """One server plus any number of clerks, each with its own end-point."""

    def __init__(self, unreliable: bool = False) -> None:
        self._lock = threading.Lock()
        self._ops_lock = threading.Lock()
        self.net = Network()
        self.kvserver: KVServer | None = None
        self._clerks: dict[Clerk, str] = {}
        self._next_client_id = SERVER_ID + 1
        self._start = time.monotonic()
        self._t0 = self._start
        self._rpcs0 = 0
        self._ops = 0
        self.start_server()
        self.net.reliable = not unreliable

    def __enter__(self) -> Harness:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.cleanup()
        else:
            self.net.cleanup()

    def _check_timeout(self) -> None:
        if time.monotonic() - self._start > TIME_LIMIT:
            raise TimeoutError(f"test took longer than {TIME_LIMIT:.0f} seconds")

    def cleanup(self) -> None:
        """Shut the network down and enforce the time limit."""
        with self._lock:
            self.net.cleanup()
        self._check_timeout()

    def make_client(self) -> Clerk:
        """Create a clerk with a fresh, connected and enabled end-point."""
        with self._lock:
            endname = _randstring(20)
            end = self.net.make_end(endname)
            self.net.connect(endname, SERVER_ID)
            ck = Clerk(end)
            self._clerks[ck] = endname
            self._next_client_id += 1
            self.net.enable(endname, True)
            return ck

    def delete_client(self, ck: Clerk) -> None:
        """Remove a clerk's end-point; raises ``KeyError`` for an unknown clerk."""
        with self._lock:
            endname = self._clerks.pop(ck)
            self.net.delete_end(endname)

    def connect_client(self, ck: Clerk) -> None:
        with self._lock:
            self.net.enable(self._clerks[ck], True)

    def start_server(self) -> None:
        self.kvserver = start_kv_server()
        server = Server()
        server.add_service(Service(self.kvserver))
        self.net.add_server(SERVER_ID, server)

    def rpc_total(self) -> int:
        return self.net.total_count()

    def begin(self, description: str) -> None:
        """Start a test: print its description and reset the statistics."""
        print(f"{description} ...")
        self._t0 = time.monotonic()
        self._rpcs0 = self.rpc_total()
        with self._ops_lock:
            self._ops = 0

    def op(self) -> None:
        """Count one clerk operation."""
        with self._ops_lock:
            self._ops += 1

    def end(self) -> RunStats:
        """Finish a test: print and return its statistics."""
        self._check_timeout()
        with self._ops_lock:
            ops = self._ops
        stats = RunStats(
            seconds=time.monotonic() - self._t0,
            rpcs=self.rpc_total() - self._rpcs0,
            ops=ops,
        )
        print(f"  ... Passed -- t {stats.seconds:4.1f} nrpc {stats.rpcs:5d} ops {stats.ops:4d}")
        return stats