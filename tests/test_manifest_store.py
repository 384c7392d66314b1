"""Tests for the deck manifest (cards.txt)."""

from datetime import datetime

import pytest

from decksync.domain.errors import MalformedRecord, StorageUnavailable
from decksync.domain.value_objects.manifest_entry import ManifestEntry
from decksync.infrastructure.manifest_store import (
    format_entry,
    parse_entry,
    parse_manifest,
    serialize_manifest,
)

T1 = datetime(2024, 3, 1, 9, 0, 0)
T2 = datetime(2024, 3, 1, 10, 30, 15)


class TestParsing:
    def test_parse_live_and_deleted_lines(self):
        assert parse_entry("c1,2024-03-01 09:00:00") == ManifestEntry("c1", T1)
        assert parse_entry("c2,2024-03-01 10:30:15,deleted") == ManifestEntry("c2", T2, True)

    @pytest.mark.parametrize(
        "line",
        [
            "c1",
            "c1,yesterday",
            "c1,2024-03-01 09:00:00,gone",
            ",2024-03-01 09:00:00",
            "a,b,c,d",
        ],
    )
    def test_malformed_lines_raise(self, line):
        with pytest.raises(MalformedRecord):
            parse_entry(line)

    def test_format_matches_file_layout(self):
        assert format_entry(ManifestEntry("c2", T2, True)) == "c2,2024-03-01 10:30:15,deleted"

    def test_manifest_skips_blank_malformed_and_duplicate_lines(self):
        text = (
            "7\n"
            "c1,2024-03-01 09:00:00\n"
            "\n"
            "garbage line\n"
            "c2,2024-03-01 10:30:15,deleted\n"
            "c1,2024-03-02 09:00:00\n"
        )
        entries = parse_manifest(text)
        assert [e.id for e in entries] == ["c1", "c2"]
        assert entries[0].last_modified == T1

    def test_manifest_without_header_keeps_first_record(self):
        entries = parse_manifest("c1,2024-03-01 09:00:00\nc2,2024-03-01 10:30:15\n")
        assert [e.id for e in entries] == ["c1", "c2"]

    def test_serialize_recomputes_header(self):
        text = serialize_manifest([ManifestEntry("c1", T1), ManifestEntry("c2", T2, True)])
        assert text.splitlines() == [
            "1",
            "c1,2024-03-01 09:00:00",
            "c2,2024-03-01 10:30:15,deleted",
        ]

    def test_empty_text_is_empty_deck(self):
        assert parse_manifest("") == []


class TestManifestStore:
    def test_missing_manifest_is_empty_deck(self, manifest_store, deck_dir):
        assert manifest_store.load(deck_dir) == []
        assert manifest_store.active_count(deck_dir) == 0

    def test_upsert_appends_then_rewrites(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T1)
        manifest_store.upsert(deck_dir, "c2", T1)
        manifest_store.upsert(deck_dir, "c1", T2)

        entries = manifest_store.load(deck_dir)
        assert [e.id for e in entries] == ["c1", "c2"]
        assert entries[0].last_modified == T2
        assert manifest_store.path_for(deck_dir).read_text().splitlines()[0] == "2"

    def test_upsert_bumps_timestamp_that_does_not_move_forward(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T2)
        entry = manifest_store.upsert(deck_dir, "c1", T1)
        assert entry.last_modified == datetime(2024, 3, 1, 10, 30, 16)

    def test_upsert_defaults_to_clock(self, manifest_store, deck_dir, clock):
        entry = manifest_store.upsert(deck_dir, "c1")
        assert entry.last_modified == clock.now()

    def test_upsert_rejects_invalid_id(self, manifest_store, deck_dir):
        with pytest.raises(ValueError):
            manifest_store.upsert(deck_dir, "a,b", T1)

    def test_tombstone_keeps_line_and_lowers_count(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T1)
        manifest_store.upsert(deck_dir, "c2", T1)

        entry = manifest_store.tombstone(deck_dir, "c1", T2)

        assert entry == ManifestEntry("c1", T2, True)
        assert manifest_store.active_ids(deck_dir) == ["c2"]
        assert len(manifest_store.load(deck_dir)) == 2
        assert manifest_store.path_for(deck_dir).read_text().splitlines()[0] == "1"

    def test_tombstone_is_idempotent_and_ignores_unknown(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T1)
        first = manifest_store.tombstone(deck_dir, "c1", T2)
        again = manifest_store.tombstone(deck_dir, "c1", datetime(2024, 4, 1))
        assert again == first
        assert manifest_store.tombstone(deck_dir, "nope", T2) is None

    def test_upsert_revives_tombstone(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T1)
        manifest_store.tombstone(deck_dir, "c1", T2)
        entry = manifest_store.upsert(deck_dir, "c1", datetime(2024, 3, 2))
        assert not entry.tombstone
        assert manifest_store.active_ids(deck_dir) == ["c1"]

    def test_apply_writes_entry_exactly(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T2)
        manifest_store.apply(deck_dir, ManifestEntry("c1", T1))
        assert manifest_store.get(deck_dir, "c1").last_modified == T1

    def test_purge_only_drops_tombstones(self, manifest_store, deck_dir):
        manifest_store.upsert(deck_dir, "c1", T1)
        manifest_store.upsert(deck_dir, "c2", T1)
        manifest_store.tombstone(deck_dir, "c1", T2)

        removed = manifest_store.purge(deck_dir, {"c1", "c2"})

        assert removed == 1
        assert [e.id for e in manifest_store.load(deck_dir)] == ["c2"]

    def test_recompute_fixes_wrong_header(self, manifest_store, deck_dir):
        deck_dir.mkdir(parents=True)
        manifest_store.path_for(deck_dir).write_text(
            "9\nc1,2024-03-01 09:00:00\nc2,2024-03-01 09:00:00,deleted\n"
        )
        assert manifest_store.recompute_active_count(deck_dir) == 1
        assert manifest_store.path_for(deck_dir).read_text().splitlines()[0] == "1"

    def test_read_bytes_is_normalized(self, manifest_store, deck_dir):
        deck_dir.mkdir(parents=True)
        manifest_store.path_for(deck_dir).write_text("x\n\nc1,2024-03-01 09:00:00\n")
        assert manifest_store.read_bytes(deck_dir) == b"1\nc1,2024-03-01 09:00:00\n"

    def test_unwritable_directory_raises_storage_unavailable(self, manifest_store, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(StorageUnavailable):
            manifest_store.upsert(blocker / "deck", "c1", T1)
