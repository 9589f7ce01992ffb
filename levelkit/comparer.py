"""Total orderings over byte-string keys."""

from __future__ import annotations

import abc


class Comparer(abc.ABC):
    """A total ordering over byte-string keys.

    The name of a comparer is stored with the database; opening a database
    with a comparer of another name is an error. Names starting with
    ``leveldb.`` are reserved.
    """

    @abc.abstractmethod
    def compare(self, a: bytes, b: bytes) -> int:
        """Return -1, 0 or +1 as ``a`` is less than, equal to or greater than ``b``.

        Two keys compare equal only if their contents are equal, and the
        empty key is less than any non-empty key.
        """

    @abc.abstractmethod
    def name(self) -> str:
        """Return the name of this ordering."""

    @abc.abstractmethod
    def separator(self, a: bytes, b: bytes) -> bytes | None:
        """Return a short key ``x`` with ``a <= x < b``, or None if ``x`` would equal ``a``."""

    @abc.abstractmethod
    def successor(self, b: bytes) -> bytes | None:
        """Return a short key ``x`` with ``x >= b``, or None if ``x`` would equal ``b``."""


class BytewiseComparer(Comparer):
    """The natural lexicographic ordering of bytes."""

    def compare(self, a: bytes, b: bytes) -> int:
        a, b = bytes(a), bytes(b)
        return (a > b) - (a < b)

    def name(self) -> str:
        return "leveldb.BytewiseComparator"

    def separator(self, a: bytes, b: bytes) -> bytes | None:
        a, b = bytes(a), bytes(b)
        limit = min(len(a), len(b))
        common = next(
            (i for i, (x, y) in enumerate(zip(a, b)) if x != y),
            limit,
        )
        if common >= limit:
            # One key is a prefix of the other: do not shorten.
            return None
        c = a[common]
        if c < 0xFF and c + 1 < b[common]:
            return a[:common] + bytes([c + 1])
        return None

    def successor(self, b: bytes) -> bytes | None:
        b = bytes(b)
        for i, c in enumerate(b):
            if c != 0xFF:
                return b[:i] + bytes([c + 1])
        return None


DEFAULT_COMPARER = BytewiseComparer()