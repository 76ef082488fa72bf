"""Tests for the checkpoint store."""

import pytest

from recon_crawler.domain.crawl_state import CrawlState, CrawlStatus
from recon_crawler.domain.models import Form, FormField
from recon_crawler.errors import CheckpointError, CheckpointNotFoundError, CheckpointWriteError
from recon_crawler.output.checkpoint import CheckpointStore


def _running_state(task_id="task-1"):
    state = CrawlState.create_new(task_id, "https://example.com/", max_depth=3)
    state.start()
    for index in range(5):
        state.mark_visited(f"https://example.com/p{index}", depth=1)
    state.mark_failed("https://example.com/broken", "http 500")
    state.set_pending([("https://example.com/u1", 2), ("https://example.com/u2", 3)])
    state.add_forms([Form(action="https://example.com/login", method="POST", fields=(FormField(name="user"),))])
    state.add_apis(["https://example.com/api/v1/items"])
    return state


class TestSaveAndLoad:
    """Checkpoints round-trip through the JSON file."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        store = CheckpointStore(tmp_path)
        state = _running_state()

        path = await store.save(state)
        loaded = await store.load("task-1")

        assert path == tmp_path / "task-1_checkpoint.json"
        assert loaded.status == CrawlStatus.RUNNING
        assert loaded.total_crawled == 5
        assert set(loaded.visited_urls) == set(state.visited_urls)
        assert loaded.failed_urls == {"https://example.com/broken": "http 500"}
        assert loaded.pending_with_depths() == [("https://example.com/u1", 2), ("https://example.com/u2", 3)]
        assert loaded.discovered_forms[0].fields[0].name == "user"
        assert loaded.discovered_apis == ["https://example.com/api/v1/items"]

    @pytest.mark.asyncio
    async def test_no_temp_files_are_left_behind(self, tmp_path):
        store = CheckpointStore(tmp_path)

        await store.save(_running_state())
        await store.save(_running_state())

        assert [path.name for path in tmp_path.iterdir()] == ["task-1_checkpoint.json"]

    @pytest.mark.asyncio
    async def test_task_id_is_sanitized_for_the_filename(self, tmp_path):
        store = CheckpointStore(tmp_path)

        path = await store.save(_running_state("../evil task"))

        assert path.parent == tmp_path
        assert path.name == ".._evil_task_checkpoint.json"

    @pytest.mark.asyncio
    async def test_missing_checkpoint(self, tmp_path):
        with pytest.raises(CheckpointNotFoundError):
            await CheckpointStore(tmp_path).load("nope")

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint(self, tmp_path):
        (tmp_path / "bad_checkpoint.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(CheckpointError):
            await CheckpointStore(tmp_path).load("bad")

    @pytest.mark.asyncio
    async def test_write_error_when_directory_is_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")

        with pytest.raises(CheckpointWriteError):
            await CheckpointStore(blocker / "checkpoints").save(_running_state())


class TestManagement:
    @pytest.mark.asyncio
    async def test_list_checkpoints_newest_first_and_skips_corrupt(self, tmp_path):
        store = CheckpointStore(tmp_path)
        older = _running_state("older")
        await store.save(older)
        newer = _running_state("newer")
        newer.pause()
        await store.save(newer)
        (tmp_path / "junk_checkpoint.json").write_text("[]", encoding="utf-8")

        infos = store.list_checkpoints()

        assert [info.task_id for info in infos] == ["newer", "older"]
        assert infos[0].status == "paused"
        assert infos[0].pending == 2
        assert infos[0].progress_percent == pytest.approx(100 * 5 / 7, abs=0.01)
        assert infos[0].to_dict()["target_url"] == "https://example.com/"

    def test_list_checkpoints_without_directory(self, tmp_path):
        assert CheckpointStore(tmp_path / "missing").list_checkpoints() == []

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = CheckpointStore(tmp_path)
        await store.save(_running_state())

        store.delete("task-1")

        assert not store.exists("task-1")
        with pytest.raises(CheckpointNotFoundError):
            store.delete("task-1")
