"""An in-process RPC layer over a simulated, unreliable network.

A ``Network`` connects named client end-points to named servers.  It can
lose requests and replies, delay them, reorder them, and cut particular
end-points off entirely.  Arguments and replies are serialised with
``labkit.labgob``, so RPCs never share object references.

    net = Network()
    end = net.make_end("end1")
    server = Server()
    server.add_service(Service(receiver))
    net.add_server("server1", server)
    net.connect("end1", "server1")
    net.enable("end1", True)
    reply = end.call("Receiver.method", args)

``ClientEnd.call`` returns the handler's reply, or raises ``RPCError`` when
no reply arrived: the request or reply was lost, the end-point is disabled,
or the server has been removed.  Handlers are public methods of the
receiver that take one argument; what they return is the reply.
"""

from __future__ import annotations

import inspect
import io
import queue
import random
import threading
import time
from typing import Any, Hashable

from labkit.labgob import LabDecoder, LabEncoder

__all__ = ["RPCError", "ClientEnd", "Network", "Server", "Service"]

_POLL_INTERVAL = 0.1


class RPCError(Exception):
    """No reply was received: the request or reply was lost, or the server is gone."""


def _encode(value: Any) -> bytes:
    buf = io.BytesIO()
    LabEncoder(buf).encode(value)
    return buf.getvalue()


def _decode(data: bytes) -> Any:
    return LabDecoder(io.BytesIO(data)).decode()


def _takes_one_argument(func: Any) -> bool:
    """True if a method, called on an instance, accepts exactly one positional argument."""
    code = func.__code__
    positional = code.co_argcount - 1  # without the receiver
    required = positional - len(func.__defaults__ or ())
    kwonly_required = code.co_kwonlyargcount - len(func.__kwdefaults__ or {})
    has_varargs = bool(code.co_flags & inspect.CO_VARARGS)
    if positional < 0 or kwonly_required > 0 or required > 1:
        return False
    return positional >= 1 or has_varargs


class Service:
    """An object whose one-argument public methods handle RPCs."""

    def __init__(self, receiver: Any) -> None:
        self.name = type(receiver).__name__
        self._methods: dict[str, Any] = {}
        cls = type(receiver)
        for attr_name in dir(cls):
            if attr_name.startswith("_"):
                continue
            func = inspect.getattr_static(cls, attr_name)
            if not inspect.isfunction(func) or not _takes_one_argument(func):
                continue
            self._methods[attr_name] = getattr(receiver, attr_name)

    @property
    def method_names(self) -> frozenset[str]:
        """Names of the methods that handle RPCs."""
        return frozenset(self._methods)

    def _dispatch(self, method_name: str, args: bytes) -> bytes:
        handler = self._methods.get(method_name)
        if handler is None:
            raise LookupError(
                f"unknown method {method_name} in {self.name}; "
                f"expecting one of {sorted(self._methods)}"
            )
        return _encode(handler(_decode(args)))


class Server:
    """A collection of services sharing one RPC end-point."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: dict[str, Service] = {}
        self._count = 0

    def add_service(self, service: Service) -> None:
        with self._lock:
            self._services[service.name] = service

    def count(self) -> int:
        """Number of RPCs this server has received."""
        with self._lock:
            return self._count

    def _dispatch(self, svc_meth: str, args: bytes) -> bytes:
        with self._lock:
            self._count += 1
            service_name, _, method_name = svc_meth.rpartition(".")
            service = self._services.get(service_name)
            choices = sorted(self._services)
        if service is None:
            raise LookupError(
                f"unknown service {service_name} in {svc_meth}; expecting one of {choices}"
            )
        return service._dispatch(method_name, args)


class ClientEnd:
    """A client end-point that talks to one server."""

    def __init__(self, network: Network, endname: Hashable) -> None:
        self._network = network
        self.endname = endname

    def call(self, svc_meth: str, args: Any) -> Any:
        """Send an RPC such as ``"Service.method"`` and return the reply.

        Raises ``RPCError`` if no reply was received.
        """
        payload = _encode(args)
        return _decode(self._network._send(self.endname, svc_meth, payload))


class Network:
    """Holds end-points, servers and the connections between them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._reliable = True
        self._long_delays = False
        self._long_reordering = False
        self._ends: dict[Hashable, ClientEnd] = {}
        self._enabled: dict[Hashable, bool] = {}
        self._servers: dict[Hashable, Server | None] = {}
        self._connections: dict[Hashable, Hashable | None] = {}
        self._done = threading.Event()
        self._count = 0
        self._bytes = 0

    def __enter__(self) -> Network:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    @property
    def reliable(self) -> bool:
        """When false, messages are delayed and about a tenth are dropped."""
        with self._lock:
            return self._reliable

    @reliable.setter
    def reliable(self, yes: bool) -> None:
        with self._lock:
            self._reliable = yes

    @property
    def long_reordering(self) -> bool:
        """When true, replies are sometimes held back for a long time."""
        with self._lock:
            return self._long_reordering

    @long_reordering.setter
    def long_reordering(self, yes: bool) -> None:
        with self._lock:
            self._long_reordering = yes

    @property
    def long_delays(self) -> bool:
        """When true, calls on disabled end-points take up to seven seconds to fail."""
        with self._lock:
            return self._long_delays

    @long_delays.setter
    def long_delays(self, yes: bool) -> None:
        with self._lock:
            self._long_delays = yes

    def cleanup(self) -> None:
        """Shut the network down; later calls fail at once."""
        self._done.set()

    def make_end(self, endname: Hashable) -> ClientEnd:
        """Create a disabled, unconnected client end-point."""
        with self._lock:
            if endname in self._ends:
                raise ValueError(f"end-point {endname!r} already exists")
            end = ClientEnd(self, endname)
            self._ends[endname] = end
            self._enabled[endname] = False
            self._connections[endname] = None
            return end

    def delete_end(self, endname: Hashable) -> None:
        with self._lock:
            if endname not in self._ends:
                raise KeyError(f"end-point {endname!r} doesn't exist")
            del self._ends[endname]
            self._enabled.pop(endname, None)
            self._connections.pop(endname, None)

    def add_server(self, servername: Hashable, server: Server) -> None:
        with self._lock:
            self._servers[servername] = server

    def delete_server(self, servername: Hashable) -> None:
        """Remove a server; RPCs in progress on it fail."""
        with self._lock:
            self._servers[servername] = None

    def connect(self, endname: Hashable, servername: Hashable) -> None:
        with self._lock:
            self._connections[endname] = servername

    def enable(self, endname: Hashable, enabled: bool) -> None:
        with self._lock:
            self._enabled[endname] = enabled

    def count(self, servername: Hashable) -> int:
        """Number of RPCs the named server has received."""
        with self._lock:
            server = self._servers.get(servername)
        if server is None:
            raise KeyError(f"no server {servername!r}")
        return server.count()

    def total_count(self) -> int:
        """Number of RPCs sent through the network."""
        with self._stats_lock:
            return self._count

    def total_bytes(self) -> int:
        """Bytes of arguments and delivered replies sent through the network."""
        with self._stats_lock:
            return self._bytes

    def _add_stats(self, calls: int, size: int) -> None:
        with self._stats_lock:
            self._count += calls
            self._bytes += size

    def _server_dead(self, endname: Hashable, servername: Hashable, server: Server) -> bool:
        with self._lock:
            return not self._enabled.get(endname, False) or self._servers.get(servername) is not server

    def _send(self, endname: Hashable, svc_meth: str, args: bytes) -> bytes:
        if self._done.is_set():
            raise RPCError("network has been shut down")
        self._add_stats(1, len(args))

        with self._lock:
            enabled = self._enabled.get(endname, False)
            servername = self._connections.get(endname)
            server = self._servers.get(servername) if servername is not None else None
            reliable = self._reliable
            long_reordering = self._long_reordering
            long_delays = self._long_delays

        if not enabled or servername is None or server is None:
            # simulate no reply and an eventual timeout
            time.sleep(random.randrange(7000 if long_delays else 100) / 1000)
            raise RPCError("no reply")

        if not reliable:
            time.sleep(random.randrange(27) / 1000)
            if random.randrange(1000) < 100:
                raise RPCError("request lost")

        outcome: queue.SimpleQueue = queue.SimpleQueue()

        def run() -> None:
            try:
                outcome.put((True, server._dispatch(svc_meth, args)))
            except Exception as exc:
                outcome.put((False, exc))

        threading.Thread(target=run, daemon=True).start()

        result = None
        while result is None:
            try:
                result = outcome.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                if self._server_dead(endname, servername, server):
                    break

        # never reply once the server has been removed, so a client cannot
        # see success for work the server did on superseded state
        if result is None or self._server_dead(endname, servername, server):
            raise RPCError("server is gone")
        ok, value = result
        if not ok:
            raise value
        if not reliable and random.randrange(1000) < 100:
            raise RPCError("reply lost")
        if long_reordering and random.randrange(900) < 600:
            time.sleep((200 + random.randrange(1 + random.randrange(2000))) / 1000)
        self._add_stats(0, len(value))
        return value