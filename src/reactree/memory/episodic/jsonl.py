"""Append-only JSON Lines episodic store.

Each episode is one JSON object per line. A writer that crashed mid-append can
leave a partial last line: readers ignore it, and the next append cuts it off
before writing so it never ends up in the middle of the log.
"""

from __future__ import annotations

import fcntl
import logging
import os
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from pydantic import ValidationError

from reactree.errors import MemoryStoreIOError
from reactree.memory.episodic.models import EpisodicRecord
from reactree.memory.episodic.similarity import SimilarityScorer, rank_similar

logger = logging.getLogger(__name__)

_TAIL_SCAN_CHUNK = 4096


class JsonlEpisodicStore:
    """Append-only episode log on the local filesystem.

    Appends are serialized across threads by an instance lock and across store
    instances and processes by an exclusive ``flock`` on the log, held from the
    tail repair through the write.
    """

    def __init__(self, path: str | Path, *, scorer: SimilarityScorer | None = None) -> None:
        self.path = Path(path)
        self.scorer = scorer
        self._lock = threading.Lock()

    def record(self, episode: EpisodicRecord) -> None:
        payload = (episode.to_json_line() + "\n").encode("utf-8")
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a+b") as handle:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                    try:
                        self._discard_partial_tail(handle)
                        handle.write(payload)
                        handle.flush()
                        os.fsync(handle.fileno())
                    finally:
                        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            except OSError as exc:
                raise MemoryStoreIOError(
                    f"failed to append episode {episode.episode_id} to {self.path}: {exc}"
                ) from exc

    def find_similar(
        self,
        goal_description: str,
        context_tags: Sequence[str],
        limit: int,
    ) -> list[EpisodicRecord]:
        return rank_similar(
            self.records(), goal_description, context_tags, limit, scorer=self.scorer
        )

    def records(self) -> list[EpisodicRecord]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise MemoryStoreIOError(f"failed to read episodes from {self.path}: {exc}") from exc

        lines = [
            (number, line)
            for number, line in enumerate(raw.decode("utf-8", errors="replace").splitlines(), 1)
            if line.strip()
        ]
        records: list[EpisodicRecord] = []
        for index, (number, line) in enumerate(lines):
            try:
                records.append(EpisodicRecord.model_validate_json(line))
            except ValidationError as exc:
                if index == len(lines) - 1:
                    logger.warning(
                        "episodic event=partial_line_ignored path=%s line=%d", self.path, number
                    )
                    continue
                raise MemoryStoreIOError(
                    f"corrupt episode at {self.path}:{number}: {exc.errors()[0]['msg']}"
                ) from exc
        return records

    def _discard_partial_tail(self, handle: BinaryIO) -> None:
        """Truncate an unterminated last line left by a crashed writer.

        The caller holds the exclusive lock on ``handle``.
        """
        size = os.fstat(handle.fileno()).st_size
        if size == 0:
            return
        handle.seek(size - 1)
        if handle.read(1) == b"\n":
            return
        cut = 0
        end = size
        while end > 0:
            start = max(0, end - _TAIL_SCAN_CHUNK)
            handle.seek(start)
            chunk = handle.read(end - start)
            newline = chunk.rfind(b"\n")
            if newline != -1:
                cut = start + newline + 1
                break
            end = start
        handle.truncate(cut)
        logger.warning(
            "episodic event=partial_tail_truncated path=%s dropped_bytes=%d", self.path, size - cut
        )
