import pytest

from labkit.mapreduce.plugins import load_plugin
from labkit.mapreduce.types import KeyValue
from labkit.mrapps import indexer, wc


def test_load_by_bare_name():
    mapf, reducef = load_plugin("wc")
    assert mapf is wc.map_func
    assert reducef is wc.reduce_func


def test_load_by_path():
    mapf, reducef = load_plugin("../mrapps/indexer.so")
    assert mapf is indexer.map_func
    assert reducef is indexer.reduce_func


@pytest.mark.parametrize("name", ["crash", "nocrash", "early_exit", "jobcount", "mtiming", "rtiming"])
def test_all_applications_available(name):
    mapf, reducef = load_plugin(f"{name}.so")
    assert callable(mapf) and callable(reducef)
    assert mapf.__module__.endswith(name)


def test_loaded_functions_work():
    mapf, reducef = load_plugin("wc.so")
    assert mapf("f", "a b") == [KeyValue("a", "1"), KeyValue("b", "1")]
    assert reducef("a", ["1", "1"]) == str(2)


def test_unknown_plugin():
    with pytest.raises(LookupError):
        load_plugin("nosuchapp.so")