# levelkit

Pure-Python building blocks of a log-structured key/value storage engine.
The package has no dependencies outside the standard library.

## Modules

- `levelkit.comparer` – key ordering. `Comparer` is the abstract interface
  (`compare`, `name`, `separator`, `successor`); `BytewiseComparer` orders
  keys bytewise and is named `"leveldb.BytewiseComparator"`.
  `DEFAULT_COMPARER` is an instance of it. `separator(a, b)` returns a short
  key `x` with `a <= x < b`, or `None` when no shorter key exists;
  `successor(b)` returns a short key `x >= b`, or `None`.
- `levelkit.batch` – write batches and their record encoding.
  - `Batch`: `put`, `delete`, `dump`, `load`, `replay`, `reset`, `records`,
    `extend`, `internal_len` and `len()`.
  - `KeyType` (`DEL`, `VAL`), `BatchReplay` (receiver for `Batch.replay`).
  - `decode_records(data)` decodes record bytes into
    `(KeyType, key, value)` tuples, with `value` `None` for deletions.
  - `encode_batch_header(seq, batch_len)` / `decode_batch_header(data)` for
    the 12-byte little-endian header (64-bit sequence number, 32-bit count).
  - `batches_len(batches)` and `write_batches_with_header(writer, batches, seq)`.
  - Malformed data raises `BatchCorruptedError`, a subclass of
    `CorruptedError`.
- `levelkit.cache` – a thread-safe map from `(namespace, key)` to
  reference-counted values.
  - `Cache.get(ns, key, set_func)` returns a `Handle`; a missing entry is
    created by calling `set_func()`, which returns `(size, value)`.
    Without `set_func`, or when it returns a `None` value, `get` returns `None`.
  - `Handle.value()` and `Handle.release()` (safe to call more than once).
  - `Cache.delete(ns, key, on_del)`, `evict`, `evict_ns`, `evict_all`,
    `nodes`, `size`, `capacity`, `set_capacity`, `close`, `close_weak`.
  - Values with a `release()` method are released when their entry is dropped.
  - `Cacher` is the abstract eviction policy; `NamespaceGetter` binds a cache
    to one namespace; `murmur32(ns, key, seed)` is the 32-bit key hash.
- `levelkit.lru` – `LRUCacher(capacity)`, a least-recently-used `Cacher`
  that keeps entries alive up to a total size.
- `levelkit.compaction_stats` – per-level compaction figures:
  `StatStaging` (timer plus read/write counts, durations in seconds),
  `CompactionStat` and the thread-safe `CompactionStats`
  (`add_stat(level, staging)`, `get_stat(level)`).
- `levelkit.compaction_transact` – retrying, revertible compaction steps.
  `TransactRunner.run(name, transact)` runs a `CompactionTransact` (or
  `run_func(name, run, revert)` runs a `FuncTransact`) until it succeeds,
  backing off between failures. The step is reverted and
  `CompactionExiting` raised when the runner is closed, on a
  `CorruptedError`, or when the `persistent_error` callback reports an error.
  Steps report progress through a `TransactCounter`.

## Install

```
pip install .
pip install ".[test]"   # with test dependencies
```

## Examples

Write batch:

```python
from levelkit.batch import Batch, KeyType

batch = Batch()
batch.put(b"foo", b"bar")
batch.delete(b"baz")
data = batch.dump()

copy = Batch()
copy.load(data)
assert len(copy) == 2
assert list(copy.records()) == [
    (KeyType.VAL, b"foo", b"bar"),
    (KeyType.DEL, b"baz", None),
]
```

Cache with LRU eviction:

```python
from levelkit.cache import Cache
from levelkit.lru import LRUCacher

cache = Cache(LRUCacher(100))
handle = cache.get(0, 1, lambda: (1, "value"))
print(handle.value())   # value
handle.release()
cache.close()
```

Retrying a compaction step:

```python
from levelkit.compaction_transact import TransactRunner

runner = TransactRunner(disable_backoff=True)
runner.run_func("example", lambda counter: counter.incr())
```

## What this package does not do

It is a set of components, not a database. There is no database object to
open, no on-disk storage, no journal, no table files, no memory table, no
snapshots or iterators, and no compaction scheduler: the compaction modules
only record statistics and run the steps they are given.

## Tests

```
pytest
```