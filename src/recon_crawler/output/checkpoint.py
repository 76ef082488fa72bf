"""Filesystem-backed checkpoint store for crawl state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path
import re
from typing import Any
from uuid import uuid4

import anyio
from anyio import to_thread
import orjson

from ..domain.crawl_state import CrawlState
from ..errors import CheckpointError, CheckpointNotFoundError, CheckpointWriteError
from ..observability.metrics import CHECKPOINT_WRITES


logger = logging.getLogger(__name__)

CHECKPOINT_SUFFIX = "_checkpoint.json"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(slots=True, frozen=True)
class CheckpointInfo:
    """One row of ``list-checkpoints``."""

    task_id: str
    target_url: str
    status: str
    progress_percent: float
    total_crawled: int
    pending: int
    last_update: datetime
    path: Path

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "target_url": self.target_url,
            "status": self.status,
            "progress_percent": self.progress_percent,
            "total_crawled": self.total_crawled,
            "pending": self.pending,
            "last_update": self.last_update.isoformat(),
            "path": str(self.path),
        }


class CheckpointStore:
    """Persist CrawlState as ``{task_id}_checkpoint.json`` using atomic writes."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, task_id: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', task_id)}{CHECKPOINT_SUFFIX}"

    async def save(self, state: CrawlState) -> Path:
        """Write a checkpoint of ``state``.

        Raises:
            CheckpointWriteError: When the file could not be written; the
                previous checkpoint, if any, is left untouched.
        """
        path = self.path_for(state.task_id)
        try:
            payload = orjson.dumps(state.create_checkpoint(), option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)
            await self._write_atomic(path, payload)
        except (OSError, TypeError) as exc:
            CHECKPOINT_WRITES.labels(outcome="error").inc()
            raise CheckpointWriteError(f"Cannot write checkpoint {path}: {exc}") from exc
        CHECKPOINT_WRITES.labels(outcome="ok").inc()
        logger.debug(
            f"Checkpoint saved for {state.task_id}: {state.total_crawled} crawled, {len(state.pending_urls)} pending"
        )
        return path

    async def load(self, task_id: str) -> CrawlState:
        """Load the checkpoint for ``task_id``.

        Raises:
            CheckpointNotFoundError: No checkpoint exists for the task.
            CheckpointError: The file exists but cannot be decoded.
        """
        path = self.path_for(task_id)
        try:
            async with await anyio.open_file(path, "rb") as fp:
                content = await fp.read()
        except FileNotFoundError as exc:
            raise CheckpointNotFoundError(f"No checkpoint for task {task_id!r} in {self.directory}") from exc
        except OSError as exc:
            raise CheckpointError(f"Cannot read checkpoint {path}: {exc}") from exc
        return _decode(path, content)

    def list_checkpoints(self) -> list[CheckpointInfo]:
        """Every readable checkpoint, most recently updated first; corrupt files are skipped."""
        if not self.directory.is_dir():
            return []
        infos: list[CheckpointInfo] = []
        for path in self.directory.glob(f"*{CHECKPOINT_SUFFIX}"):
            try:
                state = _decode(path, path.read_bytes())
            except (OSError, CheckpointError) as err:
                logger.warning(f"Skipping unreadable checkpoint {path}: {err}")
                continue
            infos.append(
                CheckpointInfo(
                    task_id=state.task_id,
                    target_url=state.target_url,
                    status=state.status.value,
                    progress_percent=state.progress_percent(),
                    total_crawled=state.total_crawled,
                    pending=len(state.pending_urls),
                    last_update=state.last_update_time,
                    path=path,
                )
            )
        infos.sort(key=lambda info: info.last_update, reverse=True)
        return infos

    def delete(self, task_id: str) -> None:
        """Remove the checkpoint for ``task_id``.

        Raises:
            CheckpointNotFoundError: No checkpoint exists for the task.
        """
        path = self.path_for(task_id)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise CheckpointNotFoundError(f"No checkpoint for task {task_id!r} in {self.directory}") from exc
        logger.info(f"Deleted checkpoint {path}")

    def exists(self, task_id: str) -> bool:
        return self.path_for(task_id).is_file()

    async def _write_atomic(self, path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
        try:
            async with await anyio.open_file(tmp_path, "wb") as fp:
                await fp.write(payload)
            await to_thread.run_sync(tmp_path.replace, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


def _decode(path: Path, content: bytes) -> CrawlState:
    try:
        return CrawlState.from_dict(orjson.loads(content))
    except orjson.JSONDecodeError as exc:
        raise CheckpointError(f"Checkpoint {path} is not valid JSON: {exc}") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise CheckpointError(f"Checkpoint {path} does not match the crawl state schema: {exc}") from exc
