"""Tests for the crawl state aggregate and its lifecycle."""

import pytest

from recon_crawler.domain.crawl_state import CrawlState, CrawlStatus
from recon_crawler.domain.models import Form, FormField
from recon_crawler.errors import InvalidStateTransitionError


def _state(**config):
    return CrawlState.create_new("task-1", "https://example.com/", max_depth=3, config=config)


class TestLifecycle:
    def test_happy_path_records_transitions(self):
        state = _state()

        state.start()
        state.pause()
        state.resume()
        state.complete()

        assert state.status == CrawlStatus.COMPLETED
        assert state.is_terminal
        assert [(t.previous, t.new) for t in state.transitions] == [
            ("init", "running"),
            ("running", "paused"),
            ("paused", "running"),
            ("running", "completed"),
        ]

    def test_fail_keeps_reason(self):
        state = _state()
        state.start()

        state.fail("disk full")

        assert state.status == CrawlStatus.FAILED
        assert state.failure_reason == "disk full"
        assert state.transitions[-1].reason == "disk full"

    def test_init_can_fail_before_start(self):
        state = _state()

        state.fail("bad seed")

        assert state.status == CrawlStatus.FAILED

    @pytest.mark.parametrize("action", ["pause", "complete"])
    def test_illegal_edges_from_init(self, action):
        with pytest.raises(InvalidStateTransitionError):
            getattr(_state(), action)()

    def test_terminal_states_reject_everything(self):
        state = _state()
        state.start()
        state.complete()

        for action in ("start", "pause", "resume"):
            with pytest.raises(InvalidStateTransitionError):
                getattr(state, action)()
        with pytest.raises(InvalidStateTransitionError):
            state.fail("late")

    def test_same_status_is_a_touch(self):
        state = _state()
        state.start()
        before = state.last_update_time

        state.start()

        assert len(state.transitions) == 1
        assert state.last_update_time >= before

    def test_running_checkpoint_can_resume(self):
        assert CrawlStatus.RUNNING.can_resume
        assert CrawlStatus.PAUSED.can_resume
        assert not CrawlStatus.COMPLETED.can_resume
        assert not CrawlStatus.INIT.can_resume

    def test_resume_from_init_is_rejected(self):
        with pytest.raises(InvalidStateTransitionError, match="Cannot resume"):
            _state().resume()


class TestBookkeeping:
    def test_visited_is_counted_once_and_clears_failure(self):
        state = _state()
        state.mark_failed("https://example.com/a", "timeout")

        state.mark_visited("https://example.com/a", depth=2)
        state.mark_visited("https://example.com/a", depth=2)

        assert state.total_crawled == 1
        assert state.current_depth == 2
        assert "https://example.com/a" not in state.failed_urls
        assert state.total_failed == 1

    def test_discoveries_are_deduplicated_in_order(self):
        state = _state()
        form = Form("https://example.com/search", "GET", (FormField("q"),))

        state.add_discovered(["https://example.com/b", "https://example.com/a", "https://example.com/b"])
        state.add_forms([form, form])
        state.add_apis(["https://example.com/api/x", "https://example.com/api/x"])

        assert state.discovered_urls == ["https://example.com/b", "https://example.com/a"]
        assert state.discovered_forms == [form]
        assert state.discovered_apis == ["https://example.com/api/x"]

    def test_pending_keeps_depths(self):
        state = _state()

        state.set_pending([("https://example.com/x", 2), ("https://example.com/y", 1), ("https://example.com/x", 3)])

        assert state.pending_urls == ["https://example.com/x", "https://example.com/y"]
        assert state.pending_with_depths() == [("https://example.com/x", 2), ("https://example.com/y", 1)]

    def test_pending_without_depths_falls_back_to_current_depth(self):
        state = CrawlState.from_dict(
            {
                "task_id": "old",
                "target_url": "https://example.com/",
                "current_depth": 2,
                "pending_urls": ["https://example.com/z"],
            }
        )

        assert state.pending_with_depths() == [("https://example.com/z", 2)]

    def test_progress_percent(self):
        state = _state()
        assert state.progress_percent() == 0.0

        state.mark_visited("https://example.com/")
        state.set_pending([("https://example.com/a", 1), ("https://example.com/b", 1), ("https://example.com/c", 1)])

        assert state.progress_percent() == 25.0


class TestPersistence:
    def test_round_trip_preserves_everything_a_resume_needs(self):
        state = _state(scope_mode="strict")
        state.start()
        state.mark_visited("https://example.com/", depth=0)
        state.mark_failed("https://example.com/broken", "HTTP 500")
        state.add_forms([Form("https://example.com/login", "POST", (FormField("user", required=True),))])
        state.add_apis(["https://example.com/api/v1/cart"])
        state.set_pending([("https://example.com/next", 1)])
        state.custom_data["weights"] = {"api": 1.2}
        state.pause()

        restored = CrawlState.from_dict(state.create_checkpoint())

        assert restored.status == CrawlStatus.PAUSED
        assert restored.visited_urls == {"https://example.com/": True}
        assert restored.failed_urls == {"https://example.com/broken": "HTTP 500"}
        assert restored.discovered_forms == state.discovered_forms
        assert restored.discovered_apis == ["https://example.com/api/v1/cart"]
        assert restored.pending_with_depths() == [("https://example.com/next", 1)]
        assert restored.config == {"scope_mode": "strict"}
        assert restored.custom_data["weights"] == {"api": 1.2}
        assert restored.start_time == state.start_time

    def test_naive_and_zulu_timestamps_are_utc(self):
        restored = CrawlState.from_dict(
            {
                "task_id": "t",
                "target_url": "https://example.com/",
                "start_time": "2024-01-01T00:00:00Z",
                "last_update_time": "2024-01-01T00:01:30",
            }
        )

        assert restored.duration.total_seconds() == 90
