"""Key comparers, write batches, a reference-counted cache with LRU eviction, and compaction helpers."""

__version__ = "0.1.0"
__all__ = ["batch", "cache", "comparer", "compaction_stats", "compaction_transact", "lru"]