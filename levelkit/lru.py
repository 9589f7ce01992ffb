"""Least-recently-used eviction policy for :class:`levelkit.cache.Cache`."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

from levelkit.cache import Cacher, Handle, Node


@dataclass(slots=True, eq=False)
class _Entry:
    node: Node
    handle: Handle | None
    ban: bool = False


class LRUCacher(Cacher):
    """Keeps the most recently used nodes alive up to a total size."""

    def __init__(self, capacity: int) -> None:
        self._lock = threading.Lock()
        self._capacity = capacity
        self._used = 0
        # Ordered from least to most recently used.
        self._recent: OrderedDict[Node, _Entry] = OrderedDict()

    def _shrink_locked(self) -> list[_Entry]:
        evicted: list[_Entry] = []
        while self._used > self._capacity:
            if not self._recent:
                raise RuntimeError("BUG: invalid LRU used or capacity counter")
            node, entry = self._recent.popitem(last=False)
            node.cache_data = None
            self._used -= node.size
            evicted.append(entry)
        return evicted

    @staticmethod
    def _release_all(entries: list[_Entry]) -> None:
        for entry in entries:
            if entry.handle is not None:
                entry.handle.release()

    def capacity(self) -> int:
        with self._lock:
            return self._capacity

    def set_capacity(self, capacity: int) -> None:
        with self._lock:
            self._capacity = capacity
            evicted = self._shrink_locked()
        self._release_all(evicted)

    def promote(self, node: Node) -> None:
        evicted: list[_Entry] = []
        with self._lock:
            entry = node.cache_data
            if entry is None:
                if node.size <= self._capacity:
                    entry = _Entry(node, node.get_handle())
                    self._recent[node] = entry
                    node.cache_data = entry
                    self._used += node.size
                    evicted = self._shrink_locked()
            elif not entry.ban:
                self._recent.move_to_end(node)
        self._release_all(evicted)

    def ban(self, node: Node) -> None:
        with self._lock:
            entry = node.cache_data
            if entry is None:
                node.cache_data = _Entry(node, None, ban=True)
                return
            if entry.ban:
                return
            del self._recent[node]
            entry.ban = True
            self._used -= node.size
            handle, entry.handle = entry.handle, None
        if handle is not None:
            handle.release()

    def evict(self, node: Node) -> None:
        with self._lock:
            entry = node.cache_data
            if entry is None or entry.ban:
                return
            node.cache_data = None
            if self._recent.pop(node, None) is not None:
                self._used -= node.size
        if entry.handle is not None:
            entry.handle.release()

    def evict_ns(self, ns: int) -> None:
        with self._lock:
            evicted = [entry for node, entry in self._recent.items() if node.ns == ns]
            for entry in evicted:
                del self._recent[entry.node]
                entry.node.cache_data = None
                self._used -= entry.node.size
        self._release_all(evicted)

    def evict_all(self) -> None:
        with self._lock:
            evicted = list(self._recent.values())
            for entry in evicted:
                entry.node.cache_data = None
            self._recent.clear()
            self._used = 0
        self._release_all(evicted)

    def close(self) -> None:
        """Forget every tracked node without releasing handles; the cache owns them."""
        with self._lock:
            for node in self._recent:
                node.cache_data = None
            self._recent.clear()
            self._used = 0