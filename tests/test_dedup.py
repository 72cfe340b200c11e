from slackcoder.channels.dedup import DedupResult, EventDeduplicator, event_key


def test_repeat_is_already_processed_until_pruned():
    dedup = EventDeduplicator()
    assert dedup.check_and_mark("k1", now=0.0) is DedupResult.NEW
    assert dedup.check_and_mark("k1", now=5000.0) is DedupResult.ALREADY_PROCESSED

    assert dedup.prune(3600, now=3601.0) == 1
    assert "k1" not in dedup
    assert dedup.check_and_mark("k1", now=3602.0) is DedupResult.NEW


def test_repeat_does_not_refresh_first_seen():
    dedup = EventDeduplicator()
    dedup.check_and_mark("k1", now=0.0)
    dedup.check_and_mark("k1", now=3000.0)
    assert dedup.prune(3600, now=3700.0) == 1


def test_prune_keeps_fresh_entries():
    dedup = EventDeduplicator()
    dedup.check_and_mark("old", now=0.0)
    dedup.check_and_mark("new", now=100.0)

    assert dedup.prune(60, now=120.0) == 1
    assert len(dedup) == 1
    assert "new" in dedup


def test_event_key_is_deterministic():
    assert event_key("C1", "1700000000.000100") == event_key("C1", "1700000000.000100")
    assert event_key("C1", "1.1") != event_key("C2", "1.1")
    assert event_key("C1", "1.1") != event_key("C1", "1.2")
