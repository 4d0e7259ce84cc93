import random
import threading
import time

import pytest

from labkit.kvsrv.client import Clerk
from labkit.kvsrv.harness import Harness

NITER = 3
RUN_TIME = 1.0


def do_get(h, ck, key):
    v = ck.get(key)
    h.op()
    return v


def do_put(h, ck, key, value):
    ck.put(key, value)
    h.op()


def do_append(h, ck, key, value):
    last = ck.append(key, value)
    h.op()
    return last


def check_clnt_appends(clnt, v, count):
    lastoff = -1
    for j in range(count):
        wanted = f"x {clnt} {j} y"
        off = v.find(wanted)
        assert off >= 0, f"{clnt} missing element {wanted} in Append result {v}"
        assert v.rfind(wanted) == off, f"duplicate element {wanted} in Append result"
        assert off > lastoff, f"wrong order for element {wanted} in Append result"
        lastoff = off


def check_concurrent_appends(v, counts):
    for i, count in enumerate(counts):
        check_clnt_appends(i, v, count)


def spawn_clients_and_wait(h, ncli, fn):
    errors = []

    def run(me):
        ck = h.make_client()
        try:
            fn(me, ck, errors)
        except Exception as exc:
            errors.append(repr(exc))
        finally:
            h.delete_client(ck)

    threads = [threading.Thread(target=run, args=(i,)) for i in range(ncli)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return errors


def generic_test(nclients, unreliable):
    with Harness(unreliable=unreliable) as h:
        h.begin("Test: generic")
        ck = h.make_client()
        for _ in range(NITER):
            done = threading.Event()
            counts = [0] * nclients

            def client(cli, myck, errors):
                j = 0
                last = ""
                try:
                    do_put(h, myck, str(cli), last)
                    while not done.is_set():
                        key = str(cli)
                        nv = f"x {cli} {j} y"
                        if random.randrange(1000) < 500:
                            ret = do_append(h, myck, key, nv)
                            if j > 0 and f"x {cli} {j - 1} y" not in ret:
                                errors.append(f"old value missing from {ret}")
                            if nv in ret:
                                errors.append(f"new value {nv} in returned {ret}")
                            last += nv
                            j += 1
                        else:
                            v = do_get(h, myck, key)
                            if v != last:
                                errors.append(f"get wrong value for {key}: {v!r} != {last!r}")
                finally:
                    counts[cli] = j

            results = []
            runner = threading.Thread(
                target=lambda: results.append(spawn_clients_and_wait(h, nclients, client))
            )
            runner.start()
            time.sleep(RUN_TIME)
            done.set()
            runner.join()
            assert results == [[]]
            for i in range(nclients):
                v = do_get(h, ck, str(i))
                check_clnt_appends(i, v, counts[i])
        stats = h.end()
        assert stats.ops > 0


def test_basic():
    generic_test(1, False)


def test_concurrent():
    generic_test(5, False)


def test_unreliable():
    generic_test(5, True)


def test_unreliable_one_key():
    nclient = 5
    upto = 10
    with Harness(unreliable=True) as h:
        ck = h.make_client()
        h.begin("Test: concurrent append to same key, unreliable")
        do_put(h, ck, "k", "")

        def client(me, myck, errors):
            for n in range(upto):
                nv = f"x {me} {n} y"
                ov = do_append(h, myck, "k", nv)
                if nv in ov:
                    errors.append(f"nv {nv} in returned values {ov}")

        assert spawn_clients_and_wait(h, nclient, client) == []
        vx = do_get(h, ck, "k")
        check_concurrent_appends(vx, [upto] * nclient)
        assert len(vx) == sum(len(f"x {i} {n} y") for i in range(nclient) for n in range(upto))
        h.end()


def test_begin_end_statistics():
    with Harness() as h:
        ck = h.make_client()
        h.begin("Test: statistics")
        do_put(h, ck, "a", "1")
        do_put(h, ck, "b", "2")
        stats = h.end()
        assert stats.ops == 2
        assert stats.rpcs == 2
        assert stats.seconds >= 0


def test_make_client_returns_working_clerk():
    with Harness() as h:
        ck = h.make_client()
        h.connect_client(ck)
        ck.put("k", "v")
        other = h.make_client()
        assert other.get("k") == "v"
        assert isinstance(ck, Clerk)
        assert h.rpc_total() == 2


def test_delete_unknown_client():
    with Harness() as h:
        ck = h.make_client()
        h.delete_client(ck)
        with pytest.raises(KeyError):
            h.delete_client(ck)