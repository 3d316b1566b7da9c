"""Tests for the file and SQLite checkpoint stores."""

import sqlite3

import pytest

from waypoint.core.errors import StorageError
from waypoint.runs.checkpoint import CheckpointStore, FileCheckpointStore, SQLiteCheckpointStore
from waypoint.runs.models import Run, RunStatus


@pytest.fixture(params=["file", "sqlite"])
def store(request, tmp_path):
    if request.param == "file":
        yield FileCheckpointStore(tmp_path / "runs")
    else:
        sqlite_store = SQLiteCheckpointStore(sqlite3.connect(":memory:"))
        yield sqlite_store
        sqlite_store.close()


def _run(run_id: str = "run_1", **kwargs) -> Run:
    return Run(id=run_id, agent_name="research-agent", checkpoint={"phase": "collecting"}, **kwargs)


class TestCheckpointStoreContract:
    def test_implements_protocol(self, store):
        assert isinstance(store, CheckpointStore)

    def test_save_and_load(self, store):
        run = _run(input={"topic": "rust"})
        store.save(run)
        assert store.load("run_1") == run

    def test_load_missing(self, store):
        assert store.load("nope") is None

    def test_save_overwrites(self, store):
        run = _run()
        store.save(run)
        run.status = RunStatus.COMPLETED
        run.checkpoint["phase"] = "completed"
        store.save(run)

        loaded = store.load("run_1")
        assert loaded.status is RunStatus.COMPLETED
        assert loaded.phase == "completed"

    def test_list_all(self, store):
        store.save(_run("run_1"))
        store.save(_run("run_2"))
        assert sorted(r.id for r in store.list_all()) == ["run_1", "run_2"]

    def test_delete(self, store):
        store.save(_run())
        store.delete("run_1")
        assert store.load("run_1") is None
        store.delete("run_1")


class TestFileCheckpointStore:
    def test_one_json_file_per_run(self, tmp_path):
        store = FileCheckpointStore(tmp_path / "runs")
        store.save(_run())
        assert [p.name for p in (tmp_path / "runs").iterdir()] == ["run_1.json"]

    def test_list_all_without_directory(self, tmp_path):
        assert FileCheckpointStore(tmp_path / "missing").list_all() == []

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        runs_dir = tmp_path / "runs"
        runs_dir.mkdir()
        (runs_dir / "run_bad.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            FileCheckpointStore(runs_dir).load("run_bad")

    def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "runs"
        blocker.write_text("a file where the directory should be")

        with pytest.raises(StorageError) as exc_info:
            FileCheckpointStore(blocker).save(_run())
        assert exc_info.value.context.run_id == "run_1"


class TestSQLiteCheckpointStore:
    def test_path_constructor_creates_parent(self, tmp_path):
        db_path = tmp_path / "nested" / "runs.db"
        store = SQLiteCheckpointStore(db_path)
        store.save(_run())
        store.close()

        reopened = SQLiteCheckpointStore(db_path)
        assert reopened.load("run_1") is not None
        reopened.close()

    def test_status_column_tracks_record(self):
        conn = sqlite3.connect(":memory:")
        store = SQLiteCheckpointStore(conn)
        run = _run()
        store.save(run)
        run.status = RunStatus.FAILED
        store.save(run)

        (status,) = conn.execute("SELECT status FROM waypoint_runs WHERE id = 'run_1'").fetchone()
        assert status == "failed"
