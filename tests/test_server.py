from labkit.kvsrv.common import GetArgs, PutAppendArgs
from labkit.kvsrv.server import KVServer, start_kv_server


def test_missing_key_reads_empty():
    kv = start_kv_server()
    assert kv.get(GetArgs(key="nothing", uid=1)).value == ""


def test_put_then_get():
    kv = KVServer()
    kv.put(PutAppendArgs(key="k", value="v1", uid=7, worder=1))
    assert kv.get(GetArgs(key="k", uid=7)).value == "v1"


def test_append_returns_previous_value():
    kv = KVServer()
    first = kv.append(PutAppendArgs(key="k", value="ab", uid=3, worder=1))
    second = kv.append(PutAppendArgs(key="k", value="cd", uid=3, worder=2))
    assert first.value == ""
    assert second.value == "ab"
    assert kv.get(GetArgs(key="k")).value == "ab" + "cd"


def test_repeated_append_is_applied_once_and_replies_the_same():
    kv = KVServer()
    kv.put(PutAppendArgs(key="k", value="base", uid=5, worder=1))
    args = PutAppendArgs(key="k", value="+x", uid=5, worder=2)
    first = kv.append(args)
    again = kv.append(args)
    assert again.value == first.value == "base"
    assert kv.get(GetArgs(key="k")).value == "base+x"


def test_repeated_put_does_not_override_later_state():
    kv = KVServer()
    kv.put(PutAppendArgs(key="k", value="one", uid=9, worder=1))
    kv.put(PutAppendArgs(key="k", value="two", uid=9, worder=2))
    kv.put(PutAppendArgs(key="k", value="one", uid=9, worder=1))
    assert kv.get(GetArgs(key="k")).value == "two"


def test_out_of_order_write_is_ignored():
    kv = KVServer()
    kv.put(PutAppendArgs(key="k", value="skipped", uid=4, worder=2))
    assert kv.get(GetArgs(key="k")).value == ""


def test_clients_are_numbered_independently():
    kv = KVServer()
    kv.append(PutAppendArgs(key="k", value="a", uid=1, worder=1))
    reply = kv.append(PutAppendArgs(key="k", value="b", uid=2, worder=1))
    assert reply.value == "a"
    assert kv.get(GetArgs(key="k")).value == "ab"