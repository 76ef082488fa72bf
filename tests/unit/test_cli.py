"""Tests for the recon-crawler command line."""

import asyncio

import httpx
import orjson
import pytest

from recon_crawler import cli
from recon_crawler.crawler import EXIT_OK, EXIT_USAGE, ReconCrawler
from recon_crawler.domain.crawl_state import CrawlState, CrawlStatus
from recon_crawler.output.checkpoint import CheckpointStore


PAGES = {
    "/": "<html><body><a href='/a'>A</a></body></html>",
    "/a": "<html><body><p>leaf</p></body></html>",
}


def _site(request: httpx.Request) -> httpx.Response:
    body = PAGES.get(request.url.path)
    if body is None:
        return httpx.Response(404)
    return httpx.Response(200, text=body, headers={"content-type": "text/html"})


class OfflineCrawler(ReconCrawler):
    def __init__(self, settings, **kwargs):
        super().__init__(settings, transport=httpx.MockTransport(_site), **kwargs)


@pytest.fixture(autouse=True)
def offline_cli(monkeypatch):
    monkeypatch.setattr(cli, "ReconCrawler", OfflineCrawler)
    monkeypatch.setattr(cli, "_setup_observability", lambda settings: None)


def _crawl_args(tmp_path, *extra):
    return [
        "crawl",
        "--url",
        "https://example.com/",
        "--task-id",
        "cli-1",
        "--workers",
        "1",
        "--rate",
        "1000",
        "--burst",
        "100",
        "--no-robots",
        "--no-sitemap",
        "--no-dom-dedup",
        "--out-dir",
        str(tmp_path / "out"),
        "--checkpoint-dir",
        str(tmp_path / "cp"),
        *extra,
    ]


def _save(state, directory):
    asyncio.run(CheckpointStore(directory).save(state))


def _paused_state(task_id, tmp_path):
    state = CrawlState.create_new(
        task_id,
        "https://example.com/",
        max_depth=2,
        config={
            "passive_robots": False,
            "passive_sitemap": False,
            "rate_per_second": 1000,
            "burst": 100,
            "out_dir": str(tmp_path / "out"),
            "checkpoint_dir": str(tmp_path / "cp"),
        },
    )
    state.start()
    state.mark_visited("https://example.com/", depth=0)
    state.set_pending([("https://example.com/a", 1)])
    state.pause()
    return state


class TestArguments:
    def test_crawl_requires_url(self):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["crawl"])
        assert excinfo.value.code == 2

    def test_cookie_flags_are_exclusive(self):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["crawl", "--url", "https://example.com/", "--cookie", "a=1", "--cookie-file", "c.txt"])
        assert excinfo.value.code == 2

    def test_unset_flags_are_not_overrides(self):
        args = cli.build_argument_parser().parse_args(
            ["crawl", "--url", "https://example.com/", "--no-robots", "--fuzz", "--scope", "strict"]
        )

        overrides = cli._overrides(args)

        assert overrides == {
            "target_url": "https://example.com/",
            "passive_robots": False,
            "fuzz_enabled": True,
            "scope_mode": "strict",
        }

    def test_common_paths_flag(self):
        args = cli.build_argument_parser().parse_args(["crawl", "--url", "https://example.com/", "--common-paths"])

        assert cli._overrides(args)["passive_common_paths"] is True

    def test_invalid_target_is_a_usage_error(self):
        assert cli.main(["crawl", "--url", "ftp://example.com/"]) == EXIT_USAGE


class TestCrawlCommand:
    def test_crawl_completes_and_saves_checkpoint(self, tmp_path, capsys):
        assert cli.main(_crawl_args(tmp_path)) == EXIT_OK

        output = capsys.readouterr().out
        assert "cli-1" in output
        assert "completed" in output
        state = asyncio.run(CheckpointStore(tmp_path / "cp").load("cli-1"))
        assert state.total_crawled == 2
        assert (tmp_path / "out" / "results.jsonl").exists()

    def test_metrics_file_is_written(self, tmp_path):
        metrics = tmp_path / "metrics" / "recon.prom"

        assert cli.main(_crawl_args(tmp_path, "--metrics-file", str(metrics))) == EXIT_OK

        assert "recon_pages_fetched_total" in metrics.read_text()


class TestResumeCommand:
    def test_resume_finishes_pending_urls(self, tmp_path):
        _save(_paused_state("cli-2", tmp_path), tmp_path / "cp")

        assert cli.main(["resume", "cli-2", "--checkpoint-dir", str(tmp_path / "cp")]) == EXIT_OK

        state = asyncio.run(CheckpointStore(tmp_path / "cp").load("cli-2"))
        assert state.status == CrawlStatus.COMPLETED
        assert set(state.visited_urls) == {"https://example.com/", "https://example.com/a"}

    def test_resume_unknown_task(self, tmp_path):
        assert cli.main(["resume", "missing", "--checkpoint-dir", str(tmp_path)]) == EXIT_USAGE

    def test_resume_completed_task_is_rejected(self, tmp_path):
        state = _paused_state("cli-3", tmp_path)
        state.resume()
        state.complete()
        _save(state, tmp_path / "cp")

        assert cli.main(["resume", "cli-3", "--checkpoint-dir", str(tmp_path / "cp")]) == EXIT_USAGE


class TestCheckpointCommands:
    def test_list_checkpoints_as_json(self, tmp_path, capsys):
        _save(_paused_state("cli-4", tmp_path), tmp_path / "cp")

        assert cli.main(["list-checkpoints", "--checkpoint-dir", str(tmp_path / "cp"), "--json"]) == EXIT_OK

        rows = [orjson.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [row["task_id"] for row in rows] == ["cli-4"]
        assert rows[0]["status"] == "paused"
        assert rows[0]["pending"] == 1

    def test_list_checkpoints_table(self, tmp_path, capsys):
        _save(_paused_state("cli-5", tmp_path), tmp_path / "cp")

        assert cli.main(["list-checkpoints", "--checkpoint-dir", str(tmp_path / "cp")]) == EXIT_OK

        output = capsys.readouterr().out
        assert "cli-5" in output
        assert "paused" in output

    def test_list_checkpoints_empty(self, tmp_path, capsys):
        assert cli.main(["list-checkpoints", "--checkpoint-dir", str(tmp_path / "none")]) == EXIT_OK
        assert "No checkpoints" in capsys.readouterr().out

    def test_delete_checkpoint(self, tmp_path):
        _save(_paused_state("cli-6", tmp_path), tmp_path / "cp")
        args = ["delete-checkpoint", "cli-6", "--checkpoint-dir", str(tmp_path / "cp")]

        assert cli.main(args) == EXIT_OK
        assert not CheckpointStore(tmp_path / "cp").exists("cli-6")
        assert cli.main(args) == EXIT_USAGE
