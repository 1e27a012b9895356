from __future__ import annotations

import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest

from formcapture.domain.errors import InvalidInput, StorageUnavailable
from formcapture.domain.models import SEARCHABLE_FIELDS, TEXT_FIELDS, RecordFields
from formcapture.store.record_store import RecordStore, _transaction
from tests.conftest import BASE_TIME, SEED_ROWS

EXPECTED_SEED_COUNT = len(SEED_ROWS)


def _raw_rows(db_path: Path) -> list[sqlite3.Row]:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    try:
        return conn.execute("SELECT * FROM records ORDER BY id").fetchall()
    finally:
        conn.close()


class TestLifecycle:
    def test_initialize_creates_data_dir_and_file(self, test_settings):
        store = RecordStore.from_settings(test_settings)
        assert not test_settings.data_dir.exists()

        store.initialize()
        try:
            assert test_settings.db_path.exists()
            assert store.initialized
        finally:
            store.close()

    def test_initialize_is_idempotent(self, store, test_settings):
        store.insert({"username": "kept"})
        store.initialize()

        second = RecordStore.from_settings(test_settings)
        second.initialize()
        try:
            assert [r.username for r in second.list_all()] == ["kept"]
        finally:
            second.close()

    def test_operations_initialize_lazily(self, test_settings):
        store = RecordStore.from_settings(test_settings)
        try:
            record_id = store.insert({"username": "lazy"})
            assert record_id == 1
            assert store.initialized
        finally:
            store.close()

    def test_store_reopens_after_close(self, store):
        store.insert({"username": "before"})
        store.close()
        assert not store.initialized

        assert [r.username for r in store.list_all()] == ["before"]

    def test_context_manager_closes_store(self, test_settings):
        with RecordStore.from_settings(test_settings) as store:
            store.insert({})
            assert store.initialized
        assert not store.initialized


class TestInsert:
    def test_ids_are_strictly_increasing(self, store):
        ids = [store.insert({"username": f"user{i}"}) for i in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)

    def test_ids_never_reused_after_delete(self, store):
        first = store.insert({"username": "a"})
        second = store.insert({"username": "b"})
        assert store.delete_one(second) is True

        third = store.insert({"username": "c"})
        assert third > second > first

    def test_ids_never_reused_after_clear_all(self, store):
        last = max(store.insert({}) for _ in range(3))
        store.clear_all()
        assert store.insert({}) > last

    def test_absent_fields_stored_as_null(self, store, test_settings):
        store.insert({})
        store.insert({"username": "", "email": None, "phone": 5551234, "name": ["x"]})

        for row in _raw_rows(test_settings.db_path):
            for field in TEXT_FIELDS:
                assert row[field] is None, field
            assert row["timestamp"]

    def test_aliases_from_capture_pages(self, store):
        record_id = store.insert({"userAgent": "Mozilla/5.0", "action": "register"})
        record = store.get(record_id)
        assert record.user_agent == "Mozilla/5.0"
        assert record.action_type == "register"

    def test_accepts_record_fields_model(self, store):
        record_id = store.insert(RecordFields(username="model", provider="google"))
        record = store.get(record_id)
        assert (record.username, record.provider) == ("model", "google")

    def test_supplied_timestamp_is_kept(self, store):
        record_id = store.insert({"timestamp": BASE_TIME})
        assert store.get(record_id).timestamp == BASE_TIME

    def test_timestamp_assigned_when_absent(self, store):
        record_id = store.insert({"username": "now"})
        assert store.get(record_id).timestamp.tzinfo is not None

    def test_pre_1000_timestamp_is_readable_and_sorted(self, store):
        recent = store.insert({"username": "recent", "timestamp": BASE_TIME})
        early = store.insert({"username": "early", "timestamp": "0999-06-01T00:00:00Z"})

        records = store.list_all()
        assert [r.id for r in records] == [recent, early]
        assert records[1].timestamp.year == 999
        assert [r.id for r in store.search("early")] == [early]

    @pytest.mark.parametrize(
        "value", ["0001-01-01T00:00:00+01:00", "9999-12-31T23:30:00-01:00"]
    )
    def test_out_of_range_timestamp_falls_back_to_now(self, store, value):
        record_id = store.insert({"username": "edge", "timestamp": value})
        assert store.get(record_id).timestamp.year > 2000

    def test_insert_failure_raises_and_returns_no_id(self, store, test_settings):
        conn = sqlite3.connect(str(test_settings.db_path))
        conn.execute("DROP TABLE records")
        conn.commit()
        conn.close()

        with pytest.raises(StorageUnavailable) as excinfo:
            store.insert({"username": "lost"})

        assert excinfo.value.operation == "insert"
        assert str(test_settings.data_dir) not in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)


class TestReads:
    def test_list_all_returns_every_record_newest_first(self, seeded_store):
        records = seeded_store.list_all()
        assert len(records) == EXPECTED_SEED_COUNT
        assert [r.id for r in records] == [4, 3, 2, 1]

    def test_timestamp_ties_broken_by_descending_id(self, store):
        older = store.insert({"username": "old", "timestamp": BASE_TIME - timedelta(days=1)})
        tie_a = store.insert({"username": "a", "timestamp": BASE_TIME})
        tie_b = store.insert({"username": "b", "timestamp": BASE_TIME})

        assert [r.id for r in store.list_all()] == [tie_b, tie_a, older]

    def test_ordering_follows_timestamp_not_insertion(self, store):
        late = store.insert({"timestamp": BASE_TIME + timedelta(hours=1)})
        early = store.insert({"timestamp": BASE_TIME})
        assert [r.id for r in store.list_all()] == [late, early]

    def test_get_missing_returns_none(self, store):
        assert store.get(999) is None

    def test_list_all_empty_store(self, store):
        assert store.list_all() == []


class TestSearch:
    def test_search_is_case_insensitive(self, seeded_store):
        assert {r.username for r in seeded_store.search("ALICE")} == {"alice"}
        assert [r.id for r in seeded_store.search("example.ORG")] == [4]

    def test_search_matches_password_and_action_type(self, seeded_store):
        assert [r.id for r in seeded_store.search("secr3t")] == [3]
        assert [r.id for r in seeded_store.search("social")] == [3]

    def test_search_ignores_user_agent(self, seeded_store):
        assert seeded_store.search("mozilla") == []

    def test_search_treats_wildcards_literally(self, store):
        store.insert({"username": "100%_real"})
        store.insert({"username": "plain"})
        assert [r.username for r in store.search("%_")] == ["100%_real"]
        assert store.search("_x") == []

    def test_search_unicode_case_folding(self, store):
        store.insert({"name": "Jürgen STRASSE"})
        assert len(store.search("jÜrgen")) == 1
        assert len(store.search("straße")) == 1

    @pytest.mark.parametrize("term", [None, ""])
    def test_empty_term_lists_everything(self, seeded_store, term):
        assert seeded_store.search(term) == seeded_store.list_all()

    @pytest.mark.parametrize("term", ["a", "LOGIN", "555", "@", "o"])
    def test_search_has_no_false_positives_or_negatives(self, seeded_store, term):
        folded = term.casefold()
        expected = [
            r.id
            for r in seeded_store.list_all()
            if any(
                getattr(r, field) is not None and folded in getattr(r, field).casefold()
                for field in SEARCHABLE_FIELDS
            )
        ]
        assert [r.id for r in seeded_store.search(term)] == expected


class TestFilterAndQuery:
    def test_filter_by_action_exact_match(self, store):
        for action in ("login", "register", "login"):
            store.insert({"action": action})

        logins = store.filter_by_action("login")
        assert len(logins) == 2
        assert all(r.action_type == "login" for r in logins)

    def test_filter_by_unknown_action_is_empty(self, seeded_store):
        assert seeded_store.filter_by_action("logout") == []
        assert seeded_store.filter_by_action("LOGIN") == []

    def test_query_combines_search_and_action(self, seeded_store):
        assert [r.id for r in seeded_store.query(search="alice", action="login")] == [1]
        assert [r.id for r in seeded_store.query(action="login")] == [4, 1]
        assert len(seeded_store.query()) == EXPECTED_SEED_COUNT


class TestAggregates:
    def test_stats_counts_distinct_non_null_values(self, store):
        store.insert({"username": "a", "provider": "google"})
        store.insert({"username": "a", "provider": "facebook"})
        store.insert({"username": "b", "provider": None})

        stats = store.stats()
        assert stats.total == 3
        assert stats.unique_users == 2
        assert stats.unique_providers == 2
        assert stats.unique_actions == 0

    def test_stats_on_empty_store(self, store):
        stats = store.stats()
        assert (stats.total, stats.unique_users, stats.unique_providers, stats.unique_actions) == (
            0,
            0,
            0,
            0,
        )

    def test_action_breakdown(self, seeded_store):
        seeded_store.insert({"username": "no-action"})
        assert seeded_store.action_breakdown() == {
            "login": 2,
            "register": 1,
            "social_login": 1,
        }


class TestDelete:
    def test_delete_by_id(self, seeded_store):
        assert seeded_store.delete_one(2) is True
        assert seeded_store.get(2) is None
        assert seeded_store.delete_one(2) is False

    def test_delete_by_id_mapping(self, seeded_store):
        assert seeded_store.delete_one({"id": 1}) is True
        assert len(seeded_store.list_all()) == EXPECTED_SEED_COUNT - 1

    def test_delete_by_timestamp_and_action(self, seeded_store):
        key = {"timestamp": BASE_TIME + timedelta(minutes=1), "type": "register"}
        assert seeded_store.delete_one(key) is True
        assert seeded_store.get(2) is None

    def test_delete_accepts_serialized_timestamp(self, seeded_store):
        record = seeded_store.get(3)
        payload = record.model_dump(mode="json")
        key = {"timestamp": payload["timestamp"], "action_type": payload["action_type"]}
        assert seeded_store.delete_one(key) is True

    def test_ambiguous_key_deletes_only_oldest(self, store):
        first = store.insert({"action": "login", "timestamp": BASE_TIME})
        second = store.insert({"action": "login", "timestamp": BASE_TIME})

        assert store.delete_one({"timestamp": BASE_TIME, "action": "login"}) is True
        assert [r.id for r in store.list_all()] == [second]
        assert first != second

    def test_timestamp_key_with_null_action_type(self, store):
        record_id = store.insert({"timestamp": BASE_TIME})
        store.insert({"timestamp": BASE_TIME, "action": "login"})

        assert store.delete_one({"timestamp": BASE_TIME}) is True
        assert store.get(record_id) is None
        assert len(store.list_all()) == 1

    def test_no_match_returns_false(self, seeded_store):
        assert seeded_store.delete_one({"timestamp": BASE_TIME, "action": "logout"}) is False
        assert seeded_store.delete_one(12345) is False
        assert len(seeded_store.list_all()) == EXPECTED_SEED_COUNT

    @pytest.mark.parametrize("key", [{}, {"action": "login"}, {"id": "abc"}, "nonsense"])
    def test_unusable_key_raises_invalid_input(self, seeded_store, key):
        with pytest.raises(InvalidInput):
            seeded_store.delete_one(key)

    def test_clear_all_returns_prior_count(self, seeded_store):
        assert seeded_store.clear_all() == EXPECTED_SEED_COUNT
        assert seeded_store.list_all() == []
        assert seeded_store.clear_all() == 0


class TestStorageFailures:
    def test_unwritable_data_dir(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("occupied")
        store = RecordStore(blocker / "data" / "records.db")

        with pytest.raises(StorageUnavailable) as excinfo:
            store.initialize()
        assert not store.initialized
        assert str(blocker) not in str(excinfo.value)

    def test_corrupt_database_file(self, tmp_path):
        db_path = tmp_path / "records.db"
        db_path.write_bytes(b"this is definitely not a sqlite database" * 100)
        store = RecordStore(db_path)

        with pytest.raises(StorageUnavailable):
            store.list_all()

    def test_read_failure_is_not_silent(self, store, test_settings):
        conn = sqlite3.connect(str(test_settings.db_path))
        conn.execute("DROP TABLE records")
        conn.commit()
        conn.close()

        with pytest.raises(StorageUnavailable):
            store.list_all()
        with pytest.raises(StorageUnavailable):
            store.stats()

    def test_pool_exhaustion_maps_to_storage_unavailable(self, test_settings):
        store = RecordStore(test_settings.db_path, pool_size=1, pool_timeout_s=0.1)
        store.initialize()
        try:
            with store._pool.connection():
                with pytest.raises(StorageUnavailable) as excinfo:
                    store.list_all()
            assert excinfo.value.operation == "list_all"
            assert store.list_all() == []
        finally:
            store.close()


class _RollbackFails:
    def execute(self, sql):
        return None

    def rollback(self):
        raise sqlite3.OperationalError("disk I/O error")


def test_failed_rollback_keeps_original_error():
    with pytest.raises(RuntimeError, match="write failed"):
        with _transaction(_RollbackFails()):
            raise RuntimeError("write failed")
