import os
import time
from unittest import mock

from labkit.mrapps import mtiming

DEAD_PID = 999999
LIVE_PID = 424242


def _fake_kill(pid, sig):
    if pid == DEAD_PID:
        raise ProcessLookupError(pid)


def test_nparallel_counts_live_workers(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / f"mr-worker-map-{LIVE_PID}").write_text("x")
    (tmp_path / f"mr-worker-map-{DEAD_PID}").write_text("x")
    (tmp_path / f"mr-worker-reduce-{LIVE_PID}").write_text("x")
    with mock.patch("os.kill", side_effect=_fake_kill), mock.patch("time.sleep"):
        n = mtiming.nparallel("map")
    assert n == 2
    assert not (tmp_path / f"mr-worker-map-{os.getpid()}").exists()


def test_nparallel_alone(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with mock.patch("time.sleep") as sleep_mock:
        assert mtiming.nparallel("map") == 1
    assert sleep_mock.call_args == mock.call(1)


def test_map_reports_time_and_parallelism(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    pid = os.getpid()
    before = time.time()
    with mock.patch("time.sleep"):
        result = mtiming.map_func("f", "c")
    assert [kv.key for kv in result] == [f"times-{pid}", f"parallel-{pid}"]
    assert abs(float(result[0].value) - before) < 1.0
    assert result[1].value == "1"


def test_reduce_sorts():
    assert mtiming.reduce_func("k", ["2.0", "1.5"]) == "1.5 2.0"