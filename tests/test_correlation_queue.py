from live_coach.correlation import AudioSource, CorrelationQueue, generate_correlation_id


def test_resolve_next_is_fifo(clock):
    queue = CorrelationQueue(clock)
    queue.submit(AudioSource.LOCAL)
    queue.submit(AudioSource.REMOTE)
    queue.submit("mic")

    assert [queue.resolve_next() for _ in range(4)] == [
        AudioSource.LOCAL,
        AudioSource.REMOTE,
        AudioSource.LOCAL,
        None,
    ]


def test_invalid_source_is_rejected(clock):
    queue = CorrelationQueue(clock)
    assert queue.submit("speaker") is None
    assert len(queue) == 0


def test_correlation_ids_are_unique_and_timestamped(clock):
    queue = CorrelationQueue(clock)
    ids = {queue.submit(AudioSource.LOCAL) for _ in range(20)}
    assert len(ids) == 20
    assert all(cid.startswith(f"{int(clock.now)}_") for cid in ids)
    assert len(generate_correlation_id(clock.now).split("_")[1]) == 9


def test_overflow_drops_oldest_never_newest(clock):
    queue = CorrelationQueue(clock, max_size=50)
    for i in range(55):
        queue.submit(AudioSource.LOCAL, timestamp=clock.now + i)
    assert len(queue) == 50
    assert queue.dropped_overflow == 5
    records = queue.records()
    assert records[0].submitted_at == clock.now + 5
    assert records[-1].submitted_at == clock.now + 54


def test_stale_records_are_evicted(clock):
    queue = CorrelationQueue(clock)
    queue.submit(AudioSource.REMOTE)
    clock.advance(1000)
    queue.submit(AudioSource.LOCAL)
    clock.advance(1500)

    # The first record is 2500ms old, past the horizon; the second is 1500ms old.
    assert queue.evict_stale() == 1
    assert queue.resolve_next() is AudioSource.LOCAL


def test_record_exactly_at_horizon_is_evicted(clock):
    queue = CorrelationQueue(clock)
    queue.submit(AudioSource.LOCAL)
    clock.advance(2000)
    assert queue.resolve_next() is None
    assert queue.evicted_stale == 1


def test_eviction_drains_to_live_bound(clock):
    queue = CorrelationQueue(clock)
    for _ in range(14):
        queue.submit(AudioSource.LOCAL)
    queue.evict_stale()
    assert len(queue) == 10


def test_size_variance_needs_five_samples(clock):
    queue = CorrelationQueue(clock)
    for _ in range(4):
        queue.submit(AudioSource.LOCAL)
        queue.evict_stale()
    assert queue.size_variance() is None
    queue.submit(AudioSource.LOCAL)
    queue.evict_stale()
    # samples 1..5: population variance 2.0
    assert queue.size_samples == [1, 2, 3, 4, 5]
    assert queue.size_variance() == 2.0


def test_resolve_by_id_is_one_time(clock):
    queue = CorrelationQueue(clock)
    cid = queue.submit(AudioSource.REMOTE)
    assert queue.resolve(cid).source is AudioSource.REMOTE
    assert queue.resolve(cid) is None


def test_snapshot_reports_raw_state(clock):
    queue = CorrelationQueue(clock)
    queue.submit(AudioSource.LOCAL)
    clock.advance(300)
    queue.submit(AudioSource.REMOTE)
    snapshot = queue.snapshot()
    assert snapshot.size == 2
    assert snapshot.oldest_age_ms == 300
    assert snapshot.size_variance is None


def test_clear_drops_records_and_samples(clock):
    queue = CorrelationQueue(clock)
    queue.submit(AudioSource.LOCAL)
    queue.evict_stale()
    queue.clear()
    assert len(queue) == 0
    assert queue.size_samples == []
