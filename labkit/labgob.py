"""Self-describing serialisation for RPC payloads and persisted state.

Values are written as length-prefixed JSON documents, one per ``encode``
call.  Dataclass instances travel by registered name, so the receiving side
rebuilds fresh objects and never shares references with the sender.

Two classes of mistakes are reported (and counted, see ``error_count``):

* dataclass fields whose names start with an underscore are private and are
  never transmitted;
* decoding into a template object that already holds non-default values,
  which usually means a reply object is being reused.
"""

from __future__ import annotations

import base64
import dataclasses
import json
import logging
import struct
import threading
import typing
from typing import Any, BinaryIO

_log = logging.getLogger(__name__)

_HEADER = struct.Struct(">I")

_lock = threading.Lock()
_error_count = 0
_checked: set = set()
_names: dict[str, type] = {}
_type_names: dict[type, str] = {}
_seen: dict[str, type] = {}


class LabGobError(ValueError):
    """Raised for values that cannot be encoded or data that cannot be decoded."""


def error_count() -> int:
    """Return how many problems the checks have reported so far."""
    with _lock:
        return _error_count


def _report(message: str, *, always: bool) -> None:
    global _error_count
    with _lock:
        first = _error_count < 1
        _error_count += 1
    if always:
        _log.error(message)
    elif first:
        _log.warning(message)


def _default_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _is_type_like(value: Any) -> bool:
    return isinstance(value, type) or typing.get_origin(value) is not None


def _check_type(tp: Any) -> None:
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        with _lock:
            if tp in _checked:
                return
            _checked.add(tp)
        for f in dataclasses.fields(tp):
            if f.name.startswith("_"):
                _report(
                    f"labgob error: private field {f.name} of {tp.__name__} "
                    "is not sent in RPC or persisted state",
                    always=True,
                )
            # annotations kept as text are not resolved; only real types are followed
            if not isinstance(f.type, str):
                _check_type(f.type)
        return
    for arg in typing.get_args(tp):
        _check_type(arg)


def _check_value(value: Any) -> None:
    if _is_type_like(value):
        _check_type(value)
    elif dataclasses.is_dataclass(value):
        _check_type(type(value))
        for f in dataclasses.fields(value):
            if not f.name.startswith("_"):
                _check_value(getattr(value, f.name, None))
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_value(item)
    elif isinstance(value, dict):
        for key, item in value.items():
            _check_value(key)
            _check_value(item)


def _zero_of(value: Any) -> Any:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return 0
    if isinstance(value, float):
        return 0.0
    return ""


def _check_default(value: Any, depth: int, name: str) -> None:
    if depth > 3 or value is None or _is_type_like(value):
        return
    if dataclasses.is_dataclass(value):
        for f in dataclasses.fields(value):
            sub = f"{name}.{f.name}" if name else f.name
            _check_default(getattr(value, f.name, None), depth + 1, sub)
    elif isinstance(value, (bool, int, float, str)):
        if value != _zero_of(value):
            what = name or type(value).__name__
            _report(
                f"labgob warning: Decoding into a non-default variable/field {what} may not work",
                always=False,
            )


def _name_for(cls: type) -> str:
    with _lock:
        name = _type_names.get(cls)
        if name is None:
            name = _default_name(cls)
            _seen[name] = cls
        return name


def _class_for(name: str) -> type:
    with _lock:
        cls = _names.get(name) or _seen.get(name)
    if cls is None:
        raise LabGobError(f"type not registered for name: {name}")
    return cls


def _to_wire(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return bool(value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, str):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return {"#b": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, list):
        return [_to_wire(item) for item in value]
    if isinstance(value, tuple):
        return {"#t": [_to_wire(item) for item in value]}
    if isinstance(value, dict):
        return {"#m": [[_to_wire(k), _to_wire(v)] for k, v in value.items()]}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {
            f.name: _to_wire(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if not f.name.startswith("_")
        }
        return {"#d": _name_for(type(value)), "#f": fields}
    raise LabGobError(f"cannot encode value of type {type(value).__name__}")


def _build(cls: type, data: dict) -> Any:
    obj = cls.__new__(cls)
    for f in dataclasses.fields(cls):
        if f.name in data:
            item = _from_wire(data[f.name])
        elif f.default is not dataclasses.MISSING:
            item = f.default
        elif f.default_factory is not dataclasses.MISSING:
            item = f.default_factory()
        else:
            item = None
        object.__setattr__(obj, f.name, item)
    return obj


def _from_wire(obj: Any) -> Any:
    if isinstance(obj, list):
        return [_from_wire(item) for item in obj]
    if not isinstance(obj, dict):
        return obj
    if "#b" in obj:
        return base64.b64decode(obj["#b"])
    if "#t" in obj:
        return tuple(_from_wire(item) for item in obj["#t"])
    if "#m" in obj:
        return {_from_wire(k): _from_wire(v) for k, v in obj["#m"]}
    if "#d" in obj:
        return _build(_class_for(obj["#d"]), obj.get("#f", {}))
    raise LabGobError("malformed value in stream")


def _fit(result: Any, into: Any) -> Any:
    if into is object or into is Any:
        return result
    if isinstance(into, type):
        if not isinstance(result, into):
            raise LabGobError(
                f"cannot decode {type(result).__name__} into {into.__name__}"
            )
        return result
    origin = typing.get_origin(into)
    if origin is not None:
        if isinstance(origin, type) and not isinstance(result, origin):
            raise LabGobError(
                f"cannot decode {type(result).__name__} into {origin.__name__}"
            )
        return result
    if dataclasses.is_dataclass(into):
        if type(result) is not type(into):
            raise LabGobError(
                f"cannot decode {type(result).__name__} into {type(into).__name__}"
            )
        for f in dataclasses.fields(into):
            if not f.name.startswith("_"):
                object.__setattr__(into, f.name, getattr(result, f.name))
        return into
    if not isinstance(result, type(into)):
        raise LabGobError(
            f"cannot decode {type(result).__name__} into {type(into).__name__}"
        )
    return result


class LabEncoder:
    """Writes values to a binary stream, one framed document per call."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def encode(self, value: Any) -> None:
        """Check and write one value."""
        _check_value(value)
        payload = json.dumps(_to_wire(value), separators=(",", ":")).encode("utf-8")
        self._stream.write(_HEADER.pack(len(payload)) + payload)


class LabDecoder:
    """Reads values written by ``LabEncoder`` from a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def _read_exact(self, size: int) -> bytes:
        data = bytearray()
        while len(data) < size:
            chunk = self._stream.read(size - len(data))
            if not chunk:
                break
            data += chunk
        return bytes(data)

    def decode(self, into: Any = object) -> Any:
        """Read the next value.

        *into* is either a type the value must have, or a template object.
        A dataclass template has its public fields overwritten in place and
        is returned.  Raises ``EOFError`` when the stream is exhausted.
        """
        _check_value(into)
        _check_default(into, 2, "")
        header = self._read_exact(_HEADER.size)
        if not header:
            raise EOFError("no more values in stream")
        if len(header) < _HEADER.size:
            raise LabGobError("truncated header")
        (size,) = _HEADER.unpack(header)
        payload = self._read_exact(size)
        if len(payload) < size:
            raise LabGobError("truncated value")
        try:
            wire = json.loads(payload.decode("utf-8"))
        except ValueError as exc:
            raise LabGobError(f"corrupt value: {exc}") from exc
        return _fit(_from_wire(wire), into)


def register_name(name: str, value: Any) -> None:
    """Register a class (or an instance's class) under *name*."""
    _check_value(value)
    cls = value if isinstance(value, type) else type(value)
    with _lock:
        if _names.get(name, cls) is not cls:
            raise ValueError(f"registering duplicate types for {name!r}")
        if _type_names.get(cls, name) != name:
            raise ValueError(f"registering duplicate names for {cls.__qualname__}")
        _names[name] = cls
        _type_names[cls] = name


def register(value: Any) -> None:
    """Register a class (or an instance's class) under its qualified name."""
    cls = value if isinstance(value, type) else type(value)
    register_name(_default_name(cls), value)