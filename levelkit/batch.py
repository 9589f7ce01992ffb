"""Write batches and their on-disk record encoding."""

from __future__ import annotations

import abc
import enum
import struct
from dataclasses import dataclass, replace
from typing import BinaryIO, Iterable, Iterator

BATCH_HEADER_LEN = 8 + 4
_MAX_VARINT_LEN64 = 10
_HEADER = struct.Struct("<QI")


class KeyType(enum.IntEnum):
    """Kind of a record: deletion or value."""

    DEL = 0
    VAL = 1


class CorruptedError(Exception):
    """Raised when stored data is found to be corrupted."""


class BatchCorruptedError(CorruptedError):
    """Raised when encoded batch data cannot be decoded."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"leveldb: batch corrupted: {reason}")


class BatchReplay(abc.ABC):
    """Receiver of the operations held in a batch."""

    @abc.abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """Receive a put operation."""

    @abc.abstractmethod
    def delete(self, key: bytes) -> None:
        """Receive a delete operation."""


def _put_uvarint(out: bytearray, value: int) -> None:
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)


def _uvarint(data: bytes, pos: int) -> tuple[int, int]:
    """Decode an unsigned varint; the count is 0 if truncated, negative on overflow."""
    value = 0
    shift = 0
    for i, byte in enumerate(data[pos:pos + _MAX_VARINT_LEN64 + 1]):
        if i == _MAX_VARINT_LEN64:
            return 0, -(i + 1)
        if byte < 0x80:
            if i == _MAX_VARINT_LEN64 - 1 and byte > 1:
                return 0, -(i + 1)
            return value | (byte << shift), i + 1
        value |= (byte & 0x7F) << shift
        shift += 7
    return 0, 0


@dataclass(frozen=True, slots=True)
class _Index:
    key_type: KeyType
    key_pos: int
    key_len: int
    value_pos: int = 0
    value_len: int = 0

    def key(self, data: bytes | bytearray) -> bytes:
        return bytes(data[self.key_pos:self.key_pos + self.key_len])

    def value(self, data: bytes | bytearray) -> bytes | None:
        if self.key_type is not KeyType.VAL:
            return None
        return bytes(data[self.value_pos:self.value_pos + self.value_len])

    @property
    def internal_len(self) -> int:
        return self.key_len + self.value_len + 8

    def shifted(self, offset: int) -> "_Index":
        return replace(
            self,
            key_pos=self.key_pos + offset,
            value_pos=self.value_pos + offset if self.key_type is KeyType.VAL else 0,
        )


def _iter_index(data: bytes | bytearray) -> Iterator[_Index]:
    pos = 0
    end = len(data)
    while pos < end:
        raw = data[pos]
        if raw > KeyType.VAL:
            raise BatchCorruptedError(f"bad record: invalid type {raw:#x}")
        key_type = KeyType(raw)
        pos += 1

        key_len, n = _uvarint(data, pos)
        pos += n
        if n <= 0 or pos + key_len > end:
            raise BatchCorruptedError("bad record: invalid key length")
        key_pos = pos
        pos += key_len

        if key_type is KeyType.VAL:
            value_len, n = _uvarint(data, pos)
            pos += n
            if n <= 0 or pos + value_len > end:
                raise BatchCorruptedError("bad record: invalid value length")
            value_pos = pos
            pos += value_len
            yield _Index(key_type, key_pos, key_len, value_pos, value_len)
        else:
            yield _Index(key_type, key_pos, key_len)


def decode_records(data: bytes) -> list[tuple[KeyType, bytes, bytes | None]]:
    """Decode batch record data into (type, key, value) tuples.

    The value is None for deletions.
    """
    return [(i.key_type, i.key(data), i.value(data)) for i in _iter_index(data)]


class Batch(BatchReplay):
    """An ordered set of put and delete operations."""

    def __init__(self) -> None:
        self._data = bytearray()
        self._index: list[_Index] = []
        self._internal_len = 0

    def _append_record(self, key_type: KeyType, key: bytes, value: bytes | None) -> None:
        data = self._data
        data.append(key_type)
        _put_uvarint(data, len(key))
        key_pos = len(data)
        data += key
        if key_type is KeyType.VAL:
            _put_uvarint(data, len(value))
            value_pos = len(data)
            data += value
            index = _Index(key_type, key_pos, len(key), value_pos, len(value))
        else:
            index = _Index(key_type, key_pos, len(key))
        self._index.append(index)
        self._internal_len += index.internal_len

    def put(self, key: bytes, value: bytes) -> None:
        """Append a put of ``key`` to ``value``."""
        self._append_record(KeyType.VAL, bytes(key), bytes(value))

    def delete(self, key: bytes) -> None:
        """Append a deletion of ``key``."""
        self._append_record(KeyType.DEL, bytes(key), None)

    def dump(self) -> bytes:
        """Return the encoded records, loadable with :meth:`load`."""
        return bytes(self._data)

    def load(self, data: bytes) -> None:
        """Replace the contents of the batch with decoded ``data``."""
        self._decode(data)

    def _decode(self, data: bytes, expected_len: int | None = None) -> None:
        self._data = bytearray(data)
        self._index = []
        self._internal_len = 0
        for index in _iter_index(self._data):
            self._index.append(index)
            self._internal_len += index.internal_len
        if expected_len is not None and len(self._index) != expected_len:
            raise BatchCorruptedError(
                f"invalid records length: {expected_len} vs {len(self._index)}"
            )

    def replay(self, replayer: BatchReplay) -> None:
        """Feed every operation, in order, to ``replayer``."""
        for index in self._index:
            if index.key_type is KeyType.VAL:
                replayer.put(index.key(self._data), index.value(self._data))
            else:
                replayer.delete(index.key(self._data))

    def reset(self) -> None:
        """Remove all operations."""
        self._data.clear()
        self._index.clear()
        self._internal_len = 0

    def records(self) -> Iterator[tuple[KeyType, bytes, bytes | None]]:
        """Yield (type, key, value) for each operation; value is None for deletions."""
        for index in self._index:
            yield index.key_type, index.key(self._data), index.value(self._data)

    def extend(self, other: "Batch") -> None:
        """Append all operations of ``other`` to this batch."""
        offset = len(self._data)
        self._data += other._data
        self._index.extend(index.shifted(offset) for index in other._index)
        self._internal_len += other._internal_len

    def internal_len(self) -> int:
        """Sum of key and value lengths plus 8 bytes of internal key per record."""
        return self._internal_len

    def __len__(self) -> int:
        return len(self._index)


def encode_batch_header(seq: int, batch_len: int) -> bytes:
    """Encode the sequence number and record count of a batch."""
    return _HEADER.pack(seq & 0xFFFFFFFFFFFFFFFF, batch_len & 0xFFFFFFFF)


def decode_batch_header(data: bytes) -> tuple[int, int]:
    """Decode a batch header into (sequence number, record count)."""
    if len(data) < BATCH_HEADER_LEN:
        raise BatchCorruptedError("too short")
    return _HEADER.unpack_from(data)


def batches_len(batches: Iterable[Batch]) -> int:
    """Total number of records in ``batches``."""
    return sum(len(batch) for batch in batches)


def write_batches_with_header(writer: BinaryIO, batches: list[Batch], seq: int) -> None:
    """Write one header followed by the records of every batch."""
    writer.write(encode_batch_header(seq, batches_len(batches)))
    for batch in batches:
        writer.write(batch.dump())