"""Tests for scriptcut.timeline - storage and the undo/redo state machine."""

import json
import tempfile
import threading
from pathlib import Path

import pytest

from scriptcut.exceptions import InvalidIndexError, TimelineNotFoundError, TimelineStorageError
from scriptcut.models import OperationStatus, Timeline
from scriptcut.timeline import TIMELINES_DIRNAME, TimelineManager, TimelineStore


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def manager(workdir):
    return TimelineManager(TimelineStore(workdir))


def _add(manager, tl_id, name, output=None):
    return manager.add_operation(tl_id, name, f"{name} step", "in.mp4", output or f"{name}.mp4")


@pytest.fixture
def abc(manager):
    """Timeline with operations A, B, C and the cursor on C."""
    tl = manager.create_timeline("ABC", base_file="raw.mp4")
    for name in ("A", "B", "C"):
        _add(manager, tl.id, name)
    return tl.id


# ============================================================
# Storage
# ============================================================


class TestTimelineStore:
    def test_save_and_load(self, workdir):
        store = TimelineStore(workdir)
        tl = Timeline(name="Stored", base_file="raw.mp4")
        store.save(tl)
        assert (Path(workdir) / TIMELINES_DIRNAME / f"{tl.id}.json").is_file()
        loaded = store.load(tl.id)
        assert loaded.name == "Stored"
        assert loaded.base_file == "raw.mp4"

    def test_save_stamps_modified(self, workdir):
        store = TimelineStore(workdir)
        tl = Timeline(name="x")
        before = tl.modified
        store.save(tl)
        assert tl.modified >= before

    def test_record_layout(self, workdir):
        store = TimelineStore(workdir)
        tl = Timeline(name="x")
        store.save(tl)
        data = json.loads((store.directory / f"{tl.id}.json").read_text(encoding="utf-8"))
        assert set(data) == {"id", "name", "created", "modified", "currentIndex", "operations"}

    def test_missing_raises_not_found(self, workdir):
        with pytest.raises(TimelineNotFoundError):
            TimelineStore(workdir).load("does-not-exist")

    def test_traversal_id_rejected(self, workdir):
        store = TimelineStore(workdir)
        for bad in ("../escape", "a/b", "..", "", "nul\x00"):
            with pytest.raises(TimelineNotFoundError):
                store.load(bad)
            assert not store.exists(bad)

    def test_corrupt_record(self, workdir):
        store = TimelineStore(workdir)
        store.directory.mkdir(parents=True)
        (store.directory / "broken.json").write_text("{oops", encoding="utf-8")
        with pytest.raises(TimelineStorageError):
            store.load("broken")

    def test_atomic_save_leaves_no_temp_files(self, workdir):
        store = TimelineStore(workdir)
        tl = Timeline(name="x")
        for _ in range(5):
            store.save(tl)
        names = [p.name for p in store.directory.iterdir()]
        assert names == [f"{tl.id}.json"]

    def test_ids_sorted(self, workdir):
        store = TimelineStore(workdir)
        for tl_id in ("b", "a"):
            store.save(Timeline(name=tl_id, id=tl_id))
        assert store.ids() == ["a", "b"]

    def test_ids_without_directory(self, workdir):
        assert TimelineStore(workdir).ids() == []

    def test_delete(self, workdir):
        store = TimelineStore(workdir)
        tl = Timeline(name="x")
        store.save(tl)
        store.delete(tl.id)
        assert not store.exists(tl.id)
        with pytest.raises(TimelineNotFoundError):
            store.delete(tl.id)


# ============================================================
# Lifecycle
# ============================================================


class TestCreateAndList:
    def test_create(self, manager):
        tl = manager.create_timeline("Cut 1", base_file="raw.mp4")
        assert tl.current_index == -1
        assert tl.operations == []
        assert manager.load_timeline(tl.id).base_file == "raw.mp4"

    def test_created_equals_modified(self, manager):
        tl = manager.create_timeline("fresh")
        assert tl.created == tl.modified
        loaded = manager.load_timeline(tl.id)
        assert loaded.created == loaded.modified == tl.created

    def test_list_sorted_by_modified_desc(self, manager):
        first = manager.create_timeline("first")
        second = manager.create_timeline("second")
        _add(manager, first.id, "trim")
        summaries = manager.list_timelines()
        assert [s.id for s in summaries] == [first.id, second.id]
        assert summaries[0].operation_count == 1

    def test_list_skips_unreadable(self, manager):
        tl = manager.create_timeline("ok")
        (manager.store.directory / "junk.json").write_text("not json", encoding="utf-8")
        assert [s.id for s in manager.list_timelines()] == [tl.id]

    def test_list_empty(self, manager):
        assert manager.list_timelines() == []

    def test_delete(self, manager):
        tl = manager.create_timeline("gone")
        manager.delete_timeline(tl.id)
        with pytest.raises(TimelineNotFoundError):
            manager.load_timeline(tl.id)

    def test_delete_missing(self, manager):
        with pytest.raises(TimelineNotFoundError):
            manager.delete_timeline("nope")

    def test_clear_keeps_base(self, manager, abc):
        tl = manager.clear_timeline(abc)
        assert tl.operations == []
        assert tl.current_index == -1
        assert tl.base_file == "raw.mp4"

    def test_clear_drops_base(self, manager, abc):
        tl = manager.clear_timeline(abc, keep_base=False)
        assert tl.base_file is None
        assert manager.load_timeline(abc).base_file is None


# ============================================================
# Recording
# ============================================================


class TestAddOperation:
    def test_appends_and_moves_cursor(self, manager, abc):
        tl = manager.load_timeline(abc)
        assert [op.operation for op in tl.operations] == ["A", "B", "C"]
        assert tl.current_index == 2

    def test_branch_truncation(self, manager, abc):
        manager.undo(abc)
        manager.undo(abc)
        tl = _add(manager, abc, "D")
        assert [op.operation for op in tl.operations] == ["A", "D"]
        assert tl.current_index == 1
        assert not tl.can_redo

    def test_add_after_undo_to_base(self, manager, abc):
        manager.jump_to(abc, -1)
        tl = _add(manager, abc, "E")
        assert [op.operation for op in tl.operations] == ["E"]
        assert tl.current_index == 0

    def test_parameters_and_list_input(self, manager):
        tl = manager.create_timeline("concat")
        tl = manager.add_operation(
            tl.id, "concat", "Join", ["a.mp4", "b.mp4"], "ab.mp4",
            parameters={"codec": "copy"}, duration=2500,
        )
        op = manager.load_timeline(tl.id).operations[0]
        assert op.input == ["a.mp4", "b.mp4"]
        assert op.parameters == {"codec": "copy"}
        assert op.duration == 2500
        assert op.status == OperationStatus.COMPLETED

    def test_missing_timeline(self, manager):
        with pytest.raises(TimelineNotFoundError):
            _add(manager, "missing", "A")

    def test_concurrent_adds_are_serialized(self, manager):
        tl = manager.create_timeline("busy")
        errors = []

        def worker(n):
            try:
                _add(manager, tl.id, f"op{n}")
            except Exception as e:  # pragma: no cover - surfaced by the assert below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stored = manager.load_timeline(tl.id)
        assert len(stored.operations) == 20
        assert stored.current_index == 19


class TestUpdateOperationStatus:
    def test_mark_failed(self, manager, abc):
        op_id = manager.load_timeline(abc).operations[1].id
        manager.update_operation_status(abc, op_id, OperationStatus.FAILED, error="ffmpeg exited 1")
        op = manager.load_timeline(abc).operations[1]
        assert op.status == OperationStatus.FAILED
        assert op.error == "ffmpeg exited 1"

    def test_reflected_in_statistics(self, manager, abc):
        op_id = manager.load_timeline(abc).operations[0].id
        manager.update_operation_status(abc, op_id, OperationStatus.PENDING)
        stats = manager.get_statistics(abc)
        assert stats.completed_operations == 2
        assert stats.pending_operations == 1

    def test_cursor_unchanged(self, manager, abc):
        manager.undo(abc)
        op_id = manager.load_timeline(abc).operations[2].id
        tl = manager.update_operation_status(abc, op_id, OperationStatus.FAILED)
        assert tl.current_index == 1

    def test_unknown_operation(self, manager, abc):
        with pytest.raises(ValueError, match="Operation not found"):
            manager.update_operation_status(abc, "nope", OperationStatus.FAILED)


# ============================================================
# Navigation
# ============================================================


class TestUndoRedo:
    def test_undo_returns_previous_output(self, manager, abc):
        result = manager.undo(abc)
        assert result.previous_output == "B.mp4"
        assert result.timeline.current_index == 1

    def test_undo_to_base(self, manager, abc):
        for _ in range(2):
            manager.undo(abc)
        result = manager.undo(abc)
        assert result.timeline.current_index == -1
        assert result.previous_output == "raw.mp4"

    def test_undo_at_base_is_noop(self, manager, abc):
        manager.jump_to(abc, -1)
        modified = manager.load_timeline(abc).modified
        result = manager.undo(abc)
        assert result.previous_output == "raw.mp4"
        assert result.timeline.current_index == -1
        assert manager.load_timeline(abc).modified == modified

    def test_undo_at_base_without_base_file(self, manager):
        tl = manager.create_timeline("empty")
        assert manager.undo(tl.id).previous_output is None

    def test_redo(self, manager, abc):
        manager.undo(abc)
        result = manager.redo(abc)
        assert result.next_output == "C.mp4"
        assert result.timeline.current_index == 2

    def test_redo_at_end_is_noop(self, manager, abc):
        result = manager.redo(abc)
        assert result.next_output is None
        assert result.timeline.current_index == 2

    def test_redo_from_base(self, manager, abc):
        manager.jump_to(abc, -1)
        assert manager.redo(abc).next_output == "A.mp4"


class TestJumpTo:
    def test_jump_to_base(self, manager, abc):
        result = manager.jump_to(abc, -1)
        assert result.output == "raw.mp4"
        assert manager.load_timeline(abc).current_index == -1

    def test_jump_to_middle(self, manager, abc):
        result = manager.jump_to(abc, 1)
        assert result.output == "B.mp4"
        assert result.timeline.can_undo
        assert result.timeline.can_redo

    @pytest.mark.parametrize("index", [-2, 3, 100])
    def test_invalid_index_does_not_write(self, manager, abc, index):
        before = (manager.store.directory / f"{abc}.json").read_text(encoding="utf-8")
        with pytest.raises(InvalidIndexError):
            manager.jump_to(abc, index)
        after = (manager.store.directory / f"{abc}.json").read_text(encoding="utf-8")
        assert before == after

    def test_invalid_index_is_value_error(self, manager, abc):
        with pytest.raises(ValueError):
            manager.jump_to(abc, 5)


class TestCurrentState:
    def test_state(self, manager, abc):
        manager.undo(abc)
        state = manager.get_current_state(abc)
        assert state.current_output == "B.mp4"
        assert state.can_undo
        assert state.can_redo


# ============================================================
# Reporting
# ============================================================


class TestStatistics:
    def test_counts_and_durations(self, manager):
        tl = manager.create_timeline("stats")
        manager.add_operation(tl.id, "trim", "", "a.mp4", "b.mp4", duration=1000)
        manager.add_operation(tl.id, "trim", "", "b.mp4", "c.mp4", duration=3000)
        manager.add_operation(tl.id, "blur", "", "c.mp4", "d.mp4",
                              status=OperationStatus.FAILED, error="bad filter")
        stats = manager.get_statistics(tl.id)
        assert stats.total_operations == 3
        assert stats.completed_operations == 2
        assert stats.failed_operations == 1
        assert stats.total_duration == 4000
        assert stats.average_duration == 2000
        assert stats.operations_by_type == {"trim": 2, "blur": 1}

    def test_empty_timeline(self, manager):
        tl = manager.create_timeline("empty")
        stats = manager.get_statistics(tl.id)
        assert stats.total_operations == 0
        assert stats.average_duration == 0.0


class TestHistory:
    def test_marks_current_operation(self, manager, abc):
        manager.undo(abc)
        history = manager.get_history(abc)
        assert "Timeline: ABC" in history
        assert "Base file: raw.mp4" in history
        assert "▶ 2. [✓] B - B step" in history
        assert "  1. [✓] A - A step" in history
        assert "Current position: 2/3" in history
        assert "Can undo: True" in history
        assert "Can redo: True" in history

    def test_failed_operation_shows_error(self, manager):
        tl = manager.create_timeline("fail")
        manager.add_operation(tl.id, "blur", "Blur face", "a.mp4", "b.mp4",
                              duration=1500, status=OperationStatus.FAILED, error="bad filter")
        history = manager.get_history(tl.id)
        assert "[✗] blur - Blur face" in history
        assert "Duration: 1.50s" in history
        assert "Error: bad filter" in history

    def test_empty(self, manager):
        tl = manager.create_timeline("new")
        history = manager.get_history(tl.id)
        assert "No operations yet" in history
        assert "Current position: 0/0" in history
        assert "Can undo: False" in history
