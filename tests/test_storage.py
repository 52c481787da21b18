"""
Unit Tests for persisted client-side state
"""
import stat

from glasstrace.core.storage import ClientStorage


class TestClientStorage:
    def test_items_round_trip(self, storage):
        storage.set_item("glasstrace-auth-token", {"access_token": "a"})

        assert storage.get_item("glasstrace-auth-token") == {"access_token": "a"}
        storage.remove_item("glasstrace-auth-token")
        assert storage.get_item("glasstrace-auth-token") is None

    def test_session_key_uses_namespace(self, tmp_path):
        assert ClientStorage(tmp_path, namespace="plant2").session_key == "plant2-auth-token"

    def test_files_are_private(self, storage):
        storage.set_item("k", "v")

        mode = stat.S_IMODE((storage.root / "local_storage.json").stat().st_mode)
        assert mode == 0o600

    def test_clear_all_is_wholesale(self, storage):
        storage.set_item("glasstrace-auth-token", {"x": 1})
        storage.set_item("preferences", {"theme": "dark"})
        storage.set_cookie("session", "abc")
        storage.open_database("glasstrace-cache")
        storage.open_database("printer-queue")

        storage.clear_all()

        assert storage.keys() == []
        assert storage.cookies() == {}
        assert storage.databases() == ["printer-queue"]

    def test_unreadable_file_reads_empty(self, storage):
        storage.root.mkdir(parents=True, exist_ok=True)
        (storage.root / "local_storage.json").write_text("{not json")

        assert storage.get_item("anything") is None
