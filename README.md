# labkit

Building blocks for experimenting with distributed systems on one machine:
a serialiser for RPC payloads, an in-process network that misbehaves on
purpose, a key/value server whose writes take effect at most once, and a
small MapReduce framework with a set of applications.

## Installing

```
pip install .
pip install ".[test]"   # to run the tests
```

## `labkit.labgob` – serialisation

`LabEncoder(stream).encode(value)` writes one value to a binary stream as a
length-prefixed JSON document. `LabDecoder(stream).decode(into)` reads the
next one. *into* may be a type the value must have (`decode(int)`), or a
dataclass instance whose public fields are overwritten in place. The
decoder raises `EOFError` when the stream is exhausted. It raises
`LabGobError` for truncated or corrupt data, and for a value of the wrong
type.

Supported values are `None`, `bool`, `int`, `float`, `str`, `bytes`, lists,
tuples, dicts and dataclass instances. A dataclass travels by name. Make it
known with `register(cls_or_instance)`, which uses its qualified name, or
with `register_name(name, cls_or_instance)`.

Two kinds of mistakes are logged and counted, and `error_count()` returns
the running total:

- dataclass fields whose names start with an underscore, because such fields
  are never transmitted;
- decoding into a template that already holds non-default values, which
  usually means a reply object is being reused.

## `labkit.labrpc` – a simulated network

```python
from labkit.labrpc import Network, Server, Service, RPCError

class Echo:
    def shout(self, text):
        return text.upper()

with Network() as net:
    server = Server()
    server.add_service(Service(Echo()))      # service name is the class name
    net.add_server("s1", server)
    end = net.make_end("e1")                 # ends start disabled
    net.connect("e1", "s1")
    net.enable("e1", True)
    end.call("Echo.shout", "hi")             # -> "HI"
```

A handler is any public method of the receiver that takes one argument. Its
return value is the reply. Arguments and replies pass through `labgob`, so
caller and handler never share objects.

`ClientEnd.call` raises `RPCError` when no reply arrives. That happens when
the end-point is disabled or unconnected, when the server has been removed
with `delete_server`, when a message is lost, or after `cleanup()`. The
network's behaviour is controlled through three properties:

- `reliable = False` delays messages and drops about a tenth of the
  requests and replies;
- `long_reordering = True` sometimes holds replies back for up to about two
  seconds;
- `long_delays = True` makes calls on disabled end-points take up to seven
  seconds to fail.

`Network.count(servername)` and `Server.count()` report the RPCs one server
has received. `total_count()` and `total_bytes()` report traffic through the
whole network. `delete_end` removes an end-point.

## `labkit.kvsrv` – key/value server

`start_kv_server()` returns an empty in-memory `KVServer` with the RPC
handlers `get`, `put` and `append`. Each write carries the client's id and a
per-client sequence number. A retransmitted write is not applied again, and
a repeated append gets the reply it got the first time. A `Clerk` wraps one
`ClientEnd` and retries every call until it gets a reply:

- `get(key)` returns `""` for a missing key;
- `put(key, value)` sets the value;
- `append(key, value)` returns the value the key held before.

`Harness` wires a server and any number of clerks together over a `Network`:

```python
from labkit.kvsrv.harness import Harness

with Harness(unreliable=True) as h:
    ck = h.make_client()
    ck.put("k", "a")
    ck.append("k", "b")    # -> "a"
    ck.get("k")            # -> "ab"
```

`begin(description)` and `end()` bracket a test run. `end()` prints the
run's statistics and returns them as a `RunStats` record (seconds, RPCs,
operations); `op()` counts one operation. `cleanup()` shuts the network down
and raises `TimeoutError` if the harness has lived longer than 120 seconds.

## MapReduce

### Running from the command line

Run the job sequentially. This writes `mr-out-0` in the current directory:

```
mrsequential wc pg-*.txt
```

Run the job distributed. Start one coordinator with the input files, then
start as many workers as you like in other terminals, from the same
directory:

```
mrcoordinator pg-*.txt
mrworker wc
```

The application is named by one of the modules in `labkit.mrapps`. A path
such as `../mrapps/wc.so` is accepted too; only its stem is used.

The coordinator uses ten reduce tasks. It listens on the UNIX-domain socket
`labkit.mapreduce.types.coordinator_sock()`, which is
`/var/tmp/5840-mr-<uid>`. A task that is not reported complete within ten
seconds is handed out again. Map task *M* writes intermediate files
`mr-M-R` as JSON lines. Reduce task *R* writes `mr-out-R`, one `key value`
line per distinct key, sorted by key. The coordinator exits once every
reduce task is done.

### Using it from Python

```python
from labkit.mrapps import wc
from labkit.mapreduce.sequential import run_sequential

run_sequential(wc.map_func, wc.reduce_func, ["a.txt", "b.txt"], "mr-out-0")
```

- `labkit.mapreduce.plugins.load_plugin(name)` returns the
  `(map_func, reduce_func)` pair of an application, or raises `LookupError`.
- `labkit.mapreduce.coordinator.Coordinator(files, n_reduce, task_timeout=...,
  sockname=...)` can be driven directly. Use `serve()` and `close()`, or use
  it as a context manager; `make_coordinator(files, n_reduce)` creates one
  and starts serving.
- `labkit.mapreduce.worker.worker(mapf, reducef)` runs a worker loop against
  the coordinator socket.
- `labkit.mapreduce.types` holds the `KeyValue` record and `ihash(key)`, the
  FNV-1a hash that picks a key's reduce bucket.

### Applications in `labkit.mrapps`

- `wc`: word count.
- `indexer`: inverted index; each word maps to the count and sorted list of
  documents it appears in.
- `crash`: exits the process a third of the time and stalls up to ten seconds
  another third.
- `nocrash`: the same output as `crash`, without the failures.
- `early_exit`: one pair per file; slow reduce for keys containing
  `sherlock` or `tom`.
- `jobcount`: counts how many map runs happened, using marker files.
- `mtiming` and `rtiming`: report how many map or reduce tasks ran in
  parallel, using marker files and process checks.

## What it does not do

- The key/value service is a single server held in memory. There is no
  replication and no persistence, and a server that is gone takes its data
  with it.
- The `labrpc` network exists only inside one Python process. Only the
  MapReduce coordinator and workers talk across processes, and only over a
  UNIX-domain socket, so that part needs a POSIX system.
- MapReduce applications are looked up among the modules of
  `labkit.mrapps`. Application code is not loaded from arbitrary files.

## Running the tests

```
pytest
```