"""
Unit tests for the local key-value stores and registration staging.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from accessgate.adapters.storage.local import JsonFileStore, MemoryStore
from accessgate.domain.staging import STAGING_KEY, RegistrationStaging, StagedRegistration


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_set_get_remove(self) -> None:
        store = MemoryStore()
        store.set("a", "1")
        assert store.get("a") == "1"
        store.remove("a")
        assert store.get("a") is None

    def test_remove_missing_key_is_noop(self) -> None:
        MemoryStore().remove("missing")

    def test_initial_values_are_copied(self) -> None:
        initial = {"a": "1"}
        store = MemoryStore(initial)
        initial["b"] = "2"
        assert store.keys() == ["a"]

    def test_concurrent_writes(self) -> None:
        store = MemoryStore()
        with ThreadPoolExecutor(max_workers=8) as executor:
            for f in [executor.submit(store.set, f"k{i}", str(i)) for i in range(100)]:
                f.result()
        assert len(store.keys()) == 100


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_values_survive_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / "session.json"
        JsonFileStore(path).set("accessgate_token", "abc")

        reopened = JsonFileStore(path)

        assert reopened.get("accessgate_token") == "abc"
        assert json.loads(path.read_text()) == {"accessgate_token": "abc"}

    def test_remove_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        store = JsonFileStore(path)
        store.set("a", "1")
        store.set("b", "2")
        store.remove("a")

        assert JsonFileStore(path).keys() == ["b"]

    def test_missing_file_starts_empty(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path / "absent.json")
        assert store.keys() == []
        assert not (tmp_path / "absent.json").exists()

    def test_corrupt_file_starts_empty(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "session.json"
        path.write_text("{not json")

        with caplog.at_level(logging.WARNING):
            store = JsonFileStore(path)

        assert store.keys() == []
        assert "unreadable session store" in caplog.text

    def test_non_object_file_starts_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileStore(path).keys() == []

    def test_no_temp_file_left_behind(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        JsonFileStore(path).set("a", "1")
        assert [p.name for p in tmp_path.iterdir()] == ["session.json"]


class TestRegistrationStaging:
    """Tests for RegistrationStaging."""

    def test_save_and_load(self) -> None:
        store = MemoryStore()
        staging = RegistrationStaging(store)
        staged = StagedRegistration(email="ada@example.com", first_name="Ada", last_name="Lovelace")

        staging.save(staged)

        assert staging.load() == staged
        assert "password" not in store.get(STAGING_KEY)

    def test_load_when_empty(self) -> None:
        assert RegistrationStaging(MemoryStore()).load() is None

    def test_clear(self) -> None:
        store = MemoryStore()
        staging = RegistrationStaging(store)
        staging.save(StagedRegistration("a@example.com", "A", "B"))
        staging.clear()
        assert store.get(STAGING_KEY) is None

    @pytest.mark.parametrize("raw", ["not json", "{}", '{"email": "a@example.com"}', "[]"])
    def test_unreadable_entry_discarded(self, raw: str) -> None:
        store = MemoryStore({STAGING_KEY: raw})

        assert RegistrationStaging(store).load() is None
        assert store.get(STAGING_KEY) is None
