"""
Tests for save-slot storage backends.
"""

import pytest

from goa_trade.state.store import JsonSaveStore, MemorySaveStore, SaveStore, StorageError


class TestJsonSaveStore:
    """File-backed slots."""

    def test_write_and_read(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.write("save_1", '{"a": 1}')

        assert store.exists("save_1")
        assert store.read("save_1") == '{"a": 1}'
        assert (tmp_path / "save_1.json").exists()

    def test_empty_slot_reads_none(self, tmp_path):
        assert JsonSaveStore(tmp_path).read("save_2") is None

    def test_overwrite_keeps_backup(self, tmp_path):
        """The previous contents survive as <slot>.json.bak."""
        store = JsonSaveStore(tmp_path)
        store.write("save_1", "first")
        store.write("save_1", "second")

        assert store.read("save_1") == "second"
        assert (tmp_path / "save_1.json.bak").read_text(encoding="utf-8") == "first"

    def test_delete(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.write("save_1", "{}")

        assert store.delete("save_1")
        assert not store.exists("save_1")
        assert not store.delete("save_1")

    def test_list_slots_ignores_hidden_files(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        store.write("save_1", "{}")
        store.write("autosave", "{}")
        (tmp_path / ".goa_trade_config.json").write_text("{}")

        assert sorted(store.list_slots()) == ["autosave", "save_1"]

    def test_creates_missing_directory(self, tmp_path):
        JsonSaveStore(tmp_path / "nested" / "saves")
        assert (tmp_path / "nested" / "saves").is_dir()

    def test_unwritable_directory_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            JsonSaveStore(blocker)

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(JsonSaveStore(tmp_path), SaveStore)


class TestMemorySaveStore:

    def test_quota_exceeded(self):
        store = MemorySaveStore(quota=8)
        store.write("save_1", "12345")

        with pytest.raises(StorageError, match="quota"):
            store.write("save_2", "12345")

    def test_rewriting_a_slot_frees_its_space(self):
        store = MemorySaveStore(quota=8)
        store.write("save_1", "12345")
        store.write("save_1", "1234567")
        assert store.read("save_1") == "1234567"

    def test_clear(self):
        store = MemorySaveStore()
        store.write("save_1", "{}")
        store.clear()
        assert store.list_slots() == []

    def test_satisfies_protocol(self):
        assert isinstance(MemorySaveStore(), SaveStore)
