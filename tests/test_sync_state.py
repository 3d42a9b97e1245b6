"""Tests for sync state persistence and card hashing.

Covers:
- Load returns empty state when the file doesn't exist
- Save creates the per-project file atomically and stamps last_sync
- Save/load round-trip of references and collection URIs
- Reference and collection-cache helpers
- card_hash determinism
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from semble_sync.sync.models import SyncDirection, SyncedReference
from semble_sync.sync.state import SyncStateStore, card_hash


def _ref(local_id: str = "smith2020", **overrides) -> SyncedReference:
    data = dict(
        local_id=local_id,
        uri=f"at://did:plc:tester/network.cosmik.card/{local_id}",
        cid="bafy1",
        content_hash="0123456789abcdef",
        synced_at="2025-01-01T00:00:00+00:00",
        direction=SyncDirection.PUSH,
        remote_cid="bafy1",
        collection_uris=["at://did:plc:tester/network.cosmik.collection/c1"],
    )
    data.update(overrides)
    return SyncedReference(**data)


class TestLoad:
    """Tests for SyncStateStore.load()."""

    def test_missing_file_gives_empty_state(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "nonexistent")
        assert store.load("refs") == {
            "version": 1,
            "project": "refs",
            "collection_uris": {},
            "references": {},
            "last_sync": None,
        }

    def test_corrupt_file_raises(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        path = store.state_path("refs")
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            store.load("refs")

    def test_missing_sections_are_filled(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        path = store.state_path("refs")
        path.parent.mkdir(parents=True)
        path.write_text('{"project": "refs"}', encoding="utf-8")
        state = store.load("refs")
        assert state["references"] == {}
        assert state["collection_uris"] == {}


class TestSave:
    """Tests for SyncStateStore.save()."""

    def test_save_writes_per_project_file(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / ".semble_sync")
        state = store.load("refs")
        store.save(state)
        path = tmp_path / ".semble_sync" / "refs" / "semble-sync.json"
        assert path.is_file()
        assert state["last_sync"] is not None

    def test_round_trip(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        state = store.load("refs")
        store.put_reference(state, _ref())
        store.set_collection_uri(state, "refs", "at://c/1")
        store.save(state)

        loaded = store.load("refs")
        assert loaded["collection_uris"] == {"refs": "at://c/1"}
        assert store.get_reference(loaded, "smith2020") == _ref()
        assert loaded["references"]["smith2020"]["direction"] == "push"

    def test_failed_write_leaves_no_temp_file(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        state = store.load("refs")
        with patch("semble_sync.sync.state.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.save(state)
        assert list((tmp_path / "refs").glob("*.tmp")) == []
        assert not store.state_path("refs").exists()


class TestHelpers:
    """Tests for reference and collection helpers."""

    def test_get_missing_reference(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        assert store.get_reference(store.load("refs"), "nope") is None

    def test_put_overwrites_and_iterates(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        state = store.load("refs")
        store.put_reference(state, _ref("a"))
        store.put_reference(state, _ref("b"))
        store.put_reference(state, _ref("a", deleted=True))

        refs = {r.local_id: r for r in store.iter_references(state)}
        assert set(refs) == {"a", "b"}
        assert refs["a"].deleted is True

    def test_synced_uris_include_deleted(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        state = store.load("refs")
        store.put_reference(state, _ref("a", deleted=True))
        store.put_reference(state, _ref("b"))
        assert store.synced_uris(state) == {
            "at://did:plc:tester/network.cosmik.card/a",
            "at://did:plc:tester/network.cosmik.card/b",
        }

    def test_collection_cache(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        state = store.load("refs")
        store.set_collection_uri(state, "refs:data", "at://c/2")
        assert store.get_collection_uri(state, "refs:data") == "at://c/2"
        store.forget_collection(state, "refs:data")
        store.forget_collection(state, "refs:data")
        assert store.get_collection_uri(state, "refs:data") is None

    def test_last_known_cid_falls_back_to_cid(self):
        assert _ref(remote_cid=None, cid="c9").last_known_cid == "c9"
        assert _ref(remote_cid="r1", cid="c9").last_known_cid == "r1"


class TestCardHash:
    """Tests for card_hash()."""

    def test_nested_key_order_is_irrelevant(self):
        a = {"type": "URL", "content": {"url": "u", "metadata": {"title": "t", "author": "x"}}}
        b = {"content": {"metadata": {"author": "x", "title": "t"}, "url": "u"}, "type": "URL"}
        assert card_hash(a) == card_hash(b)

    def test_list_order_matters(self):
        assert card_hash({"x": [1, 2]}) != card_hash({"x": [2, 1]})

    def test_length(self):
        assert len(card_hash({"type": "URL"})) == 16
