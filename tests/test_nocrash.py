from labkit.mapreduce.types import KeyValue
from labkit.mrapps import nocrash


def test_map_shape():
    result = nocrash.map_func("in.txt", "hello")
    assert [kv.key for kv in result] == ["a", "b", "c", "d"]
    assert result[0] == KeyValue("a", "in.txt")
    assert result[3] == KeyValue("d", "xyzzy")


def test_map_lengths_count_bytes():
    result = nocrash.map_func("x", "é")
    assert result[1].value == "1"
    assert result[2].value == "2"


def test_reduce_is_order_independent():
    values = ["c", "a", "b"]
    assert nocrash.reduce_func("k", values) == nocrash.reduce_func("k", list(reversed(values)))
    assert nocrash.reduce_func("k", values).split(" ") == sorted(values)