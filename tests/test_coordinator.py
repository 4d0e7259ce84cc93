import io
import os
import socket
import time

import pytest

from labkit.labgob import LabDecoder, LabEncoder
from labkit.mapreduce.coordinator import (
    ALL_TASKS_DONE,
    NO_TASK_FREE,
    Coordinator,
    main,
    make_coordinator,
)
from labkit.mapreduce.types import (
    CompleteArgs,
    ExampleArgs,
    NumFetchReply,
    coordinator_sock,
)


def test_map_tasks_assigned_in_order():
    with Coordinator(["a.txt", "b.txt"], 2) as c:
        first = c.map_task(None)
        second = c.map_task(None)
        assert (first.id, first.filename) == (0, "a.txt")
        assert (second.id, second.filename) == (1, "b.txt")
        assert c.map_task(None).id == NO_TASK_FREE


def test_maps_done_after_all_complete():
    with Coordinator(["a.txt", "b.txt"], 1) as c:
        c.map_task()
        c.map_task()
        c.complete_map(CompleteArgs(id=1))
        assert c.map_task().id == NO_TASK_FREE
        c.complete_map(CompleteArgs(id=0))
        reply = c.map_task()
        assert reply.id == ALL_TASKS_DONE
        assert reply.filename == ""


def test_reduce_phase_and_done():
    with Coordinator(["a.txt"], 2) as c:
        assert not c.done()
        ids = [c.reduce_task().id, c.reduce_task().id]
        assert ids == [0, 1]
        assert c.reduce_task().id == NO_TASK_FREE
        c.complete_reduce(CompleteArgs(id=0))
        assert not c.done()
        c.complete_reduce(CompleteArgs(id=1))
        assert c.done()
        assert c.reduce_task().id == ALL_TASKS_DONE


def test_counts():
    with Coordinator(["a", "b", "c"], 7) as c:
        assert c.n_map() == NumFetchReply(num=3)
        assert c.n_reduce() == NumFetchReply(num=7)


def test_example_adds_one():
    with Coordinator([], 1) as c:
        assert c.example(ExampleArgs(x=99)).y == 100


def test_complete_unknown_task_raises():
    with Coordinator(["a"], 1) as c:
        with pytest.raises(IndexError):
            c.complete_map(CompleteArgs(id=5))
        with pytest.raises(IndexError):
            c.complete_reduce(CompleteArgs(id=-1))


def test_timed_out_task_is_reassigned():
    with Coordinator(["a"], 1, task_timeout=0.05) as c:
        assert c.map_task().id == 0
        assert c.map_task().id == NO_TASK_FREE
        time.sleep(0.3)
        assert c.map_task().id == 0


def test_completed_task_not_reassigned():
    with Coordinator(["a", "b"], 1, task_timeout=0.05) as c:
        c.map_task()
        c.map_task()
        c.complete_map(CompleteArgs(id=0))
        time.sleep(0.3)
        assert c.map_task().id == 1
        assert c.map_task().id == NO_TASK_FREE


def test_serve_and_close_manage_socket():
    sockname = coordinator_sock()
    c = make_coordinator(["a"], 1)
    try:
        assert os.path.exists(sockname)
        assert c.n_map() == NumFetchReply(num=1)
        assert c.done() is False
    finally:
        c.close()
    assert not os.path.exists(sockname)


def test_wire_round_trip():
    sockname = coordinator_sock()
    with make_coordinator(["a", "b"], 4):
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.connect(sockname)
            buf = io.BytesIO()
            enc = LabEncoder(buf)
            enc.encode("Coordinator.n_map")
            enc.encode(None)
            sock.sendall(buf.getvalue())
            with sock.makefile("rb") as rfile:
                dec = LabDecoder(rfile)
                assert dec.decode(bool) is True
                assert dec.decode() == NumFetchReply(num=2)


def test_wire_unknown_method():
    sockname = coordinator_sock()
    with make_coordinator(["a"], 1):
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.connect(sockname)
            buf = io.BytesIO()
            enc = LabEncoder(buf)
            enc.encode("Coordinator.nothing")
            enc.encode(None)
            sock.sendall(buf.getvalue())
            with sock.makefile("rb") as rfile:
                dec = LabDecoder(rfile)
                assert dec.decode(bool) is False
                assert "unknown method" in dec.decode(str)


def test_main_without_files(capsys):
    assert main([]) == 1
    assert "Usage: mrcoordinator" in capsys.readouterr().err