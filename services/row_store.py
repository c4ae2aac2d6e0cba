"""Row store used by the bulk job orchestrator.

The orchestrator only depends on the RowStore verbs below. Two
implementations ship:
- InMemoryRowStore: lock-guarded dicts, for tests and one-shot runs
- DiskRowStore: diskcache (SQLite) so jobs survive between CLI invocations

Store failures are raised as PersistenceError.
"""

import functools
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from diskcache import Cache, Timeout

from models.models import BulkJobProgress, EpisodeLogEntry, utcnow
from utils.exceptions import PersistenceError
from utils.logging import get_logger

logger = get_logger(__name__)


class RowStore(Protocol):
    def upsert_episode(
        self, anime_id: str, episode_number: int, stream_url: str, title: str
    ) -> None: ...

    def get_episode(self, anime_id: str, episode_number: int) -> dict | None: ...

    def upsert_job_progress(self, progress: BulkJobProgress) -> None: ...

    def get_job_progress(self, job_id: str) -> BulkJobProgress | None: ...

    def upsert_episode_log(self, entry: EpisodeLogEntry) -> None: ...

    def upsert_episode_logs(self, entries: list[EpisodeLogEntry]) -> None: ...

    def list_episode_logs(
        self, job_id: str, chunk_number: int | None = None
    ) -> list[EpisodeLogEntry]: ...

    def clear_episode_logs(self, job_id: str) -> None: ...


def _episode_row(anime_id: str, episode_number: int, stream_url: str, title: str) -> dict:
    return {
        "anime_id": anime_id,
        "episode_number": episode_number,
        "stream_url": stream_url,
        "title": title,
        "updated_at": utcnow().isoformat(),
    }


def _sorted_logs(rows, chunk_number: int | None) -> list[EpisodeLogEntry]:
    entries = [EpisodeLogEntry.model_validate(row) for row in rows]
    if chunk_number is not None:
        entries = [entry for entry in entries if entry.chunk_number == chunk_number]
    return sorted(entries, key=lambda entry: entry.episode_number)


class InMemoryRowStore:
    """Process-local store; rows are kept as JSON-compatible dicts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.episodes: dict[tuple[str, int], dict] = {}
        self.jobs: dict[str, dict] = {}
        self.logs: dict[str, dict[int, dict]] = {}

    def upsert_episode(self, anime_id, episode_number, stream_url, title) -> None:
        with self._lock:
            self.episodes[(anime_id, episode_number)] = _episode_row(
                anime_id, episode_number, stream_url, title
            )

    def get_episode(self, anime_id, episode_number) -> dict | None:
        with self._lock:
            row = self.episodes.get((anime_id, episode_number))
            return dict(row) if row else None

    def upsert_job_progress(self, progress: BulkJobProgress) -> None:
        with self._lock:
            self.jobs[progress.job_id] = progress.model_dump(mode="json")

    def get_job_progress(self, job_id: str) -> BulkJobProgress | None:
        with self._lock:
            row = self.jobs.get(job_id)
        return BulkJobProgress.model_validate(row) if row else None

    def upsert_episode_log(self, entry: EpisodeLogEntry) -> None:
        self.upsert_episode_logs([entry])

    def upsert_episode_logs(self, entries: list[EpisodeLogEntry]) -> None:
        with self._lock:
            for entry in entries:
                self.logs.setdefault(entry.job_id, {})[entry.episode_number] = entry.model_dump(
                    mode="json"
                )

    def list_episode_logs(self, job_id, chunk_number=None) -> list[EpisodeLogEntry]:
        with self._lock:
            rows = list(self.logs.get(job_id, {}).values())
        return _sorted_logs(rows, chunk_number)

    def clear_episode_logs(self, job_id: str) -> None:
        with self._lock:
            self.logs.pop(job_id, None)


def _wrap_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (Timeout, sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


class DiskRowStore:
    """diskcache-backed store.

    Keys:
        episode:{anime_id}:{episode_number} -> episode row
        job:{job_id} -> BulkJobProgress as JSON dict
        logs:{job_id} -> {episode_number: EpisodeLogEntry as JSON dict}
    """

    def __init__(self, directory: Path | str, timeout: float = 1.0) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._cache = Cache(directory=str(self.directory), timeout=timeout)
        logger.debug(f"Opened row store at {self.directory}")

    @_wrap_errors
    def upsert_episode(self, anime_id, episode_number, stream_url, title) -> None:
        self._cache.set(
            f"episode:{anime_id}:{episode_number}",
            _episode_row(anime_id, episode_number, stream_url, title),
        )

    @_wrap_errors
    def get_episode(self, anime_id, episode_number) -> dict | None:
        return self._cache.get(f"episode:{anime_id}:{episode_number}")

    @_wrap_errors
    def upsert_job_progress(self, progress: BulkJobProgress) -> None:
        self._cache.set(f"job:{progress.job_id}", progress.model_dump(mode="json"))

    @_wrap_errors
    def get_job_progress(self, job_id: str) -> BulkJobProgress | None:
        row = self._cache.get(f"job:{job_id}")
        return BulkJobProgress.model_validate(row) if row else None

    def upsert_episode_log(self, entry: EpisodeLogEntry) -> None:
        self.upsert_episode_logs([entry])

    @_wrap_errors
    def upsert_episode_logs(self, entries: list[EpisodeLogEntry]) -> None:
        by_job: dict[str, list[EpisodeLogEntry]] = {}
        for entry in entries:
            by_job.setdefault(entry.job_id, []).append(entry)

        with self._cache.transact():
            for job_id, job_entries in by_job.items():
                key = f"logs:{job_id}"
                rows = self._cache.get(key, default={})
                for entry in job_entries:
                    rows[str(entry.episode_number)] = entry.model_dump(mode="json")
                self._cache.set(key, rows)

    @_wrap_errors
    def list_episode_logs(self, job_id, chunk_number=None) -> list[EpisodeLogEntry]:
        rows = self._cache.get(f"logs:{job_id}", default={})
        return _sorted_logs(rows.values(), chunk_number)

    @_wrap_errors
    def clear_episode_logs(self, job_id: str) -> None:
        self._cache.delete(f"logs:{job_id}")

    def close(self) -> None:
        self._cache.close()
