from datetime import datetime, timedelta, timezone

from design_studio.services.drafts import DraftStore, MemoryDraftBackend, draft_key, format_last_saved

NOW = datetime(2026, 5, 10, 9, 30, tzinfo=timezone.utc)


def test_draft_key_format():
    assert draft_key(42, "sell-sheet") == "job-intake-draft-v1-42-sell-sheet"


def test_save_then_load_round_trip_stamps_last_saved():
    store = DraftStore(MemoryDraftBackend())

    store.save(1, "intake", {"title": "Lamp"}, now=NOW)
    loaded = store.load(1, "intake", now=NOW + timedelta(hours=1))

    assert loaded["title"] == "Lamp"
    assert loaded["last_saved"] == NOW.isoformat()
    assert store.has_draft(1, "intake", now=NOW) is True
    assert store.last_saved(1, "intake", now=NOW) == NOW


def test_expired_draft_is_deleted_on_load():
    backend = MemoryDraftBackend()
    store = DraftStore(backend)
    store.save(1, "intake", {"title": "Old"}, now=NOW)

    assert store.load(1, "intake", now=NOW + timedelta(days=7, seconds=1)) is None
    assert len(backend) == 0


def test_has_draft_ignores_expired_draft():
    backend = MemoryDraftBackend()
    store = DraftStore(backend)
    store.save(1, "intake", {"title": "Old"}, now=NOW - timedelta(days=8))

    assert store.has_draft(1, "intake", now=NOW) is False
    assert len(backend) == 0


def test_unreadable_draft_is_discarded():
    backend = MemoryDraftBackend()
    backend.set(draft_key(1, "intake"), "{not json")
    store = DraftStore(backend)

    assert store.load(1, "intake", now=NOW) is None
    assert store.has_draft(1, "intake", now=NOW) is False


def test_drafts_are_isolated_per_user_and_form():
    store = DraftStore(MemoryDraftBackend())
    store.save(1, "intake", {"title": "A"}, now=NOW)
    store.save(2, "intake", {"title": "B"}, now=NOW)

    store.clear(1, "intake")

    assert store.load(1, "intake", now=NOW) is None
    assert store.load(2, "intake", now=NOW)["title"] == "B"
    assert store.load(2, "other", now=NOW) is None


def test_format_last_saved():
    assert format_last_saved(NOW - timedelta(seconds=20), now=NOW) == "Just now"
    assert format_last_saved(NOW - timedelta(minutes=1), now=NOW) == "1 minute ago"
    assert format_last_saved(NOW - timedelta(minutes=45), now=NOW) == "45 minutes ago"
    assert format_last_saved(NOW - timedelta(hours=3), now=NOW) == "3 hours ago"
    assert format_last_saved(NOW - timedelta(days=2), now=NOW) == "2 days ago"
