import threading

from levelkit.compaction_stats import CompactionStat, CompactionStats, StatStaging


def _clock(ticks):
    it = iter(ticks)
    return lambda: next(it)


def test_timer_measures_elapsed_time():
    ticks = [10.0, 12.5]
    staging = StatStaging(clock=_clock(ticks))
    staging.start_timer()
    staging.stop_timer()
    assert staging.duration == ticks[1] - ticks[0]


def test_second_start_does_not_restart_timer():
    ticks = [1.0, 4.0]
    staging = StatStaging(clock=_clock(ticks))
    staging.start_timer()
    staging.start_timer()
    staging.stop_timer()
    assert staging.duration == ticks[1] - ticks[0]


def test_stop_without_start_keeps_duration():
    staging = StatStaging(clock=_clock([]))
    staging.stop_timer()
    assert staging.duration == 0.0


def test_timer_accumulates_over_runs():
    ticks = [0.0, 2.0, 5.0, 6.0]
    staging = StatStaging(clock=_clock(ticks))
    staging.start_timer()
    staging.stop_timer()
    staging.start_timer()
    staging.stop_timer()
    assert staging.duration == (ticks[1] - ticks[0]) + (ticks[3] - ticks[2])


def test_compaction_stat_add_sums_figures():
    a = StatStaging(duration=1.5, read=100, write=40)
    b = StatStaging(duration=0.5, read=7, write=3)
    stat = CompactionStat()
    stat.add(a)
    stat.add(b)
    assert stat.get() == (a.duration + b.duration, a.read + b.read, a.write + b.write)


def test_get_stat_of_unknown_level_is_zero():
    stats = CompactionStats()
    assert stats.get_stat(5) == (0.0, 0, 0)


def test_add_stat_grows_levels():
    stats = CompactionStats()
    staging = StatStaging(duration=2.0, read=11, write=22)
    stats.add_stat(3, staging)
    assert stats.get_stat(3) == (staging.duration, staging.read, staging.write)
    assert stats.get_stat(0) == (0.0, 0, 0)
    assert stats.get_stat(4) == (0.0, 0, 0)


def test_add_stat_is_thread_safe():
    stats = CompactionStats()
    per_thread = 500
    nthreads = 8

    def worker():
        for _ in range(per_thread):
            stats.add_stat(1, StatStaging(read=1, write=2))

    threads = [threading.Thread(target=worker) for _ in range(nthreads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    _, read, write = stats.get_stat(1)
    assert read == per_thread * nthreads
    assert write == 2 * per_thread * nthreads