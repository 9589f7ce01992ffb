"""A concurrent namespaced cache map with pluggable eviction policy."""

from __future__ import annotations

import abc
import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

_MASK32 = 0xFFFFFFFF
_HASH_SEED = 0xF00

SetFunc = Callable[[], "tuple[int, Any]"]


@runtime_checkable
class _Releaser(Protocol):
    def release(self) -> None: ...


def _release_value(value: Any) -> None:
    if isinstance(value, _Releaser):
        value.release()


def murmur32(ns: int, key: int, seed: int) -> int:
    """Hash a namespace and key pair into an unsigned 32-bit value."""
    m = 0x5BD1E995
    r = 24

    def mix(k: int) -> int:
        k = (k * m) & _MASK32
        k ^= k >> r
        return (k * m) & _MASK32

    parts = (
        (ns >> 32) & _MASK32,
        ns & _MASK32,
        (key >> 32) & _MASK32,
        key & _MASK32,
    )
    h = seed & _MASK32
    for part in parts:
        h = (h * m) & _MASK32
        h ^= mix(part)
    h ^= h >> 13
    h = (h * m) & _MASK32
    h ^= h >> 15
    return h


class Cacher(abc.ABC):
    """Eviction policy attached to a :class:`Cache`; must be thread-safe."""

    @abc.abstractmethod
    def capacity(self) -> int:
        """Return the cache capacity."""

    @abc.abstractmethod
    def set_capacity(self, capacity: int) -> None:
        """Change the cache capacity."""

    @abc.abstractmethod
    def promote(self, node: "Node") -> None:
        """Mark ``node`` as recently used."""

    @abc.abstractmethod
    def ban(self, node: "Node") -> None:
        """Evict ``node`` and prevent it from being promoted again."""

    @abc.abstractmethod
    def evict(self, node: "Node") -> None:
        """Evict ``node``."""

    @abc.abstractmethod
    def evict_ns(self, ns: int) -> None:
        """Evict every node of namespace ``ns``."""

    @abc.abstractmethod
    def evict_all(self) -> None:
        """Evict every node."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the policy."""


class Node:
    """An entry of a :class:`Cache`.

    ``cache_data`` is free for the attached :class:`Cacher` to use.
    """

    def __init__(self, cache: "Cache", hash_: int, ns: int, key: int) -> None:
        self.cache = cache
        self.hash = hash_
        self.ns = ns
        self.key = key
        self.size = 0
        self.value: Any = None
        self.ref = 0
        self.on_del: list[Callable[[], None]] = []
        self.cache_data: Any = None
        self._mu = threading.Lock()

    def get_handle(self) -> "Handle":
        """Return a new handle to this node, which must be referenced already."""
        with self.cache._lock:
            if self.ref <= 0:
                raise RuntimeError("BUG: Node.get_handle on zero ref")
            self.ref += 1
        return Handle(self)

    def _unref(self) -> None:
        self.cache._unref(self)

    def __repr__(self) -> str:
        return f"Node(ns={self.ns}, key={self.key}, size={self.size}, ref={self.ref})"


class Handle:
    """A reference to a cache node, to be released after use."""

    def __init__(self, node: Node) -> None:
        self._node: Node | None = node
        self._mu = threading.Lock()

    def value(self) -> Any:
        """Return the node value, or None once released."""
        node = self._node
        return node.value if node is not None else None

    def release(self) -> None:
        """Release this handle; calling it again does nothing."""
        with self._mu:
            node, self._node = self._node, None
        if node is not None:
            node._unref()


class Cache:
    """A map from (namespace, key) to reference-counted values."""

    def __init__(self, cacher: Cacher | None = None) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[tuple[int, int], Node] = {}
        self._size = 0
        self._cacher = cacher
        self._closed = False

    def nodes(self) -> int:
        """Number of nodes in the map."""
        with self._lock:
            return len(self._nodes)

    def size(self) -> int:
        """Sum of the sizes of the nodes in the map."""
        with self._lock:
            return self._size

    def capacity(self) -> int:
        """Capacity of the attached policy, or 0 without one."""
        return self._cacher.capacity() if self._cacher is not None else 0

    def set_capacity(self, capacity: int) -> None:
        """Change the capacity of the attached policy."""
        if self._cacher is not None:
            self._cacher.set_capacity(capacity)

    def _acquire(self, ns: int, key: int, create: bool) -> Node | None:
        """Look up a node and take a reference; None if closed or missing."""
        with self._lock:
            if self._closed:
                return None
            node = self._nodes.get((ns, key))
            if node is None:
                if not create:
                    return None
                node = Node(self, murmur32(ns, key, _HASH_SEED), ns, key)
                self._nodes[(ns, key)] = node
            node.ref += 1
            return node

    def _unref(self, node: Node) -> None:
        with self._lock:
            node.ref -= 1
            if node.ref != 0 or self._closed:
                return
            if self._nodes.get((node.ns, node.key)) is not node:
                return
            del self._nodes[(node.ns, node.key)]
            self._size -= node.size
            value, node.value = node.value, None
            callbacks, node.on_del = node.on_del, []
        if value is not None:
            _release_value(value)
        for callback in callbacks:
            callback()

    def get(self, ns: int, key: int, set_func: SetFunc | None = None) -> Handle | None:
        """Return a handle to the node for ``(ns, key)``.

        A missing node is created by calling ``set_func``, which returns
        ``(size, value)``; without ``set_func``, or when it returns a None
        value, the result is None.
        """
        node = self._acquire(ns, key, set_func is not None)
        if node is None:
            return None
        with node._mu:
            if node.value is None:
                if set_func is None:
                    node._unref()
                    return None
                size, value = set_func()
                if value is None:
                    node.size = 0
                    node._unref()
                    return None
                node.size, node.value = size, value
                with self._lock:
                    self._size += size
        if self._cacher is not None:
            self._cacher.promote(node)
        return Handle(node)

    def delete(self, ns: int, key: int, on_del: Callable[[], None] | None = None) -> bool:
        """Ban the node for ``(ns, key)``; return whether it existed.

        ``on_del`` runs once the node is released, or at once when the node
        does not exist.
        """
        with self._lock:
            if self._closed:
                return False
        node = self._acquire(ns, key, False)
        if node is not None:
            if on_del is not None:
                with node._mu:
                    node.on_del.append(on_del)
            if self._cacher is not None:
                self._cacher.ban(node)
            node._unref()
            return True
        if on_del is not None:
            on_del()
        return False

    def evict(self, ns: int, key: int) -> bool:
        """Evict the node for ``(ns, key)`` from the policy; return whether it existed."""
        node = self._acquire(ns, key, False)
        if node is None:
            return False
        if self._cacher is not None:
            self._cacher.evict(node)
        node._unref()
        return True

    def evict_ns(self, ns: int) -> None:
        """Evict every node of namespace ``ns`` from the policy."""
        with self._lock:
            if self._closed:
                return
        if self._cacher is not None:
            self._cacher.evict_ns(ns)

    def evict_all(self) -> None:
        """Evict every node from the policy."""
        with self._lock:
            if self._closed:
                return
        if self._cacher is not None:
            self._cacher.evict_all()

    def close(self) -> None:
        """Close the map and forcibly release every node."""
        pending: list[tuple[Any, list[Callable[[], None]]]] = []
        with self._lock:
            if not self._closed:
                self._closed = True
                for node in self._nodes.values():
                    pending.append((node.value, node.on_del))
                    node.value = None
                    node.on_del = []
        for value, callbacks in pending:
            if value is not None:
                _release_value(value)
            for callback in callbacks:
                callback()
        if self._cacher is not None:
            self._cacher.close()

    def close_weak(self) -> None:
        """Close the map and evict everything from the policy without forcing releases."""
        with self._lock:
            self._closed = True
        if self._cacher is not None:
            self._cacher.evict_all()
            self._cacher.close()


@dataclass
class NamespaceGetter:
    """A cache bound to a single namespace."""

    cache: Cache
    ns: int

    def get(self, key: int, set_func: SetFunc | None = None) -> Handle | None:
        """Get ``key`` from the bound namespace."""
        return self.cache.get(self.ns, key, set_func)