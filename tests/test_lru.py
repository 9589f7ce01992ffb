import random
import threading
from dataclasses import dataclass
from typing import Any, Callable

from levelkit.cache import Cache
from levelkit.lru import LRUCacher


@dataclass
class _Releaser:
    fn: Callable[[], None] | None
    value: Any

    def release(self) -> None:
        if self.fn is not None:
            self.fn()


def set_value(cache, ns, key, value, charge, relf=None):
    def make():
        if relf is not None:
            return charge, _Releaser(relf, value)
        return charge, value

    return cache.get(ns, key, make)


def test_capacity():
    c = Cache(LRUCacher(10))
    assert c.capacity() == 10
    set_value(c, 0, 1, 1, 1).release()
    set_value(c, 0, 2, 2, 2).release()
    set_value(c, 1, 1, 3, 3).release()
    set_value(c, 2, 1, 4, 1).release()
    set_value(c, 2, 2, 5, 1).release()
    set_value(c, 2, 3, 6, 1).release()
    set_value(c, 2, 4, 7, 1).release()
    set_value(c, 2, 5, 8, 1).release()
    assert c.nodes() == 7
    assert c.size() == 10
    c.set_capacity(9)
    assert c.capacity() == 9
    assert c.nodes() == 6
    assert c.size() == 8


def test_nil_value():
    c = Cache(LRUCacher(10))
    h = c.get(0, 0, lambda: (1, None))
    assert h is None
    assert c.nodes() == 0
    assert c.size() == 0


def test_hit_miss():
    cases = [
        (1, "vvvvvvvvv"),
        (100, "v1"),
        (0, "v2"),
        (12346, "v3"),
        (777, "v4"),
        (999, "v5"),
        (7654, "v6"),
        (2, "v7"),
        (3, "v8"),
        (9, "v9"),
    ]
    setfin = [0]

    def fin():
        setfin[0] += 1

    c = Cache(LRUCacher(1000))
    for i, (key, value) in enumerate(cases):
        set_value(c, 0, key, value, len(value), fin).release()
        for j, (ykey, yvalue) in enumerate(cases):
            h = c.get(0, ykey)
            if j <= i:
                assert h is not None, (i, j)
                assert h.value().value == yvalue
                h.release()
            else:
                assert h is None, (i, j)

    for i, (key, _) in enumerate(cases):
        finalized = []
        c.delete(0, key, lambda: finalized.append(True))
        assert finalized == [True], i
        for j, (ykey, yvalue) in enumerate(cases):
            h = c.get(0, ykey)
            if j > i:
                assert h is not None, (i, j)
                assert h.value().value == yvalue
                h.release()
            else:
                assert h is None, (i, j)

    assert setfin[0] == len(cases)


def test_eviction():
    c = Cache(LRUCacher(12))
    o1 = set_value(c, 0, 1, 1, 1)
    set_value(c, 0, 2, 2, 1).release()
    set_value(c, 0, 3, 3, 1).release()
    set_value(c, 0, 4, 4, 1).release()
    set_value(c, 0, 5, 5, 1).release()
    h = c.get(0, 2)
    if h is not None:
        h.release()
    set_value(c, 0, 9, 9, 10).release()

    for key in (9, 2, 5, 1):
        h = c.get(0, key)
        assert h is not None, key
        assert h.value() == key
        h.release()
    o1.release()
    for key in (1, 2, 5):
        h = c.get(0, key)
        assert h is not None, key
        assert h.value() == key
        h.release()
    for key in (3, 4, 9):
        assert c.get(0, key) is None, key


def test_evict():
    c = Cache(LRUCacher(6))
    set_value(c, 0, 1, 1, 1).release()
    set_value(c, 0, 2, 2, 1).release()
    set_value(c, 1, 1, 4, 1).release()
    set_value(c, 1, 2, 5, 1).release()
    set_value(c, 2, 1, 6, 1).release()
    set_value(c, 2, 2, 7, 1).release()

    for ns in range(3):
        for key in range(1, 3):
            h = c.get(ns, key)
            assert h is not None, (ns, key)
            h.release()

    assert c.evict(0, 1) is True
    assert c.evict(0, 1) is False
    assert c.get(0, 1) is None

    c.evict_ns(1)
    assert c.get(1, 1) is None
    assert c.get(1, 2) is None

    c.evict_all()
    for ns in range(3):
        for key in range(1, 3):
            assert c.get(ns, key) is None, (ns, key)


def test_delete():
    calls = [0]

    def del_func():
        calls[0] += 1

    c = Cache(LRUCacher(2))
    set_value(c, 0, 1, 1, 1).release()
    set_value(c, 0, 2, 2, 1).release()

    assert c.delete(0, 1, del_func) is True
    assert c.get(0, 1) is None
    assert c.delete(0, 1, del_func) is False

    h2 = c.get(0, 2)
    assert h2 is not None
    assert c.delete(0, 2, del_func) is True
    assert c.delete(0, 2, del_func) is True

    set_value(c, 0, 3, 3, 1).release()
    set_value(c, 0, 4, 4, 1).release()
    c.get(0, 2).release()

    for key in range(2, 5):
        h = c.get(0, key)
        assert h is not None, key
        h.release()

    h2.release()
    assert c.get(0, 2) is None
    assert calls[0] == 4


def test_close():
    rel_calls = [0]
    del_calls = [0]

    def rel_func():
        rel_calls[0] += 1

    def del_func():
        del_calls[0] += 1

    c = Cache(LRUCacher(2))
    set_value(c, 0, 1, 1, 1, rel_func).release()
    set_value(c, 0, 2, 2, 1, rel_func).release()

    h3 = set_value(c, 0, 3, 3, 1, rel_func)
    assert h3 is not None
    assert c.delete(0, 3, del_func) is True

    c.close()

    assert rel_calls[0] == 3
    assert del_calls[0] == 1


def test_node_larger_than_capacity_is_not_kept():
    c = Cache(LRUCacher(5))
    set_value(c, 0, 1, "big", 10).release()
    assert c.get(0, 1) is None
    assert c.nodes() == 0