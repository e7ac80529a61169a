"""
Dashboard assembly: what a team should see right now.

Each piece is cached on its own TTL: the round number, the round content
and the timer for a few seconds, signed dataset URLs for a little less
than the lifetime of their signature. Phase 2 ("final") datasets are only
signed inside the release window before the round ends.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from datasprint.cache import MemoryCache
from datasprint.config import Settings
from datasprint.datasets import final_dataset_paths, main_dataset_paths
from datasprint.db import (
    CURRENT_ROUND_KEY,
    ROUND_END_TIME_KEY,
    DbClient,
    RoundContentRecord,
)
from datasprint.errors import RoundContentNotFound, UpstreamUnavailable
from datasprint.signed_urls import SignedUrl, SignedUrlGateway

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class DashboardView:
    round: int
    title: str
    description: str
    questions: Any
    main_dataset_paths: list[str]
    main_datasets: list[Optional[str]]
    final_datasets: list[Optional[str]]
    end_time: Optional[str] = None
    final_released: bool = False

    @property
    def main_dataset_urls(self) -> list[str]:
        return [url for url in self.main_datasets if url]

    @property
    def final_dataset_urls(self) -> list[str]:
        return [url for url in self.final_datasets if url]

    def as_dict(self) -> dict:
        dataset_url = self.main_datasets[0] if self.main_datasets else None
        final_url = self.final_datasets[0] if self.final_datasets else None
        return {
            "round": self.round,
            "title": self.title,
            "description": self.description,
            "questions": self.questions,
            "mainDatasets": self.main_dataset_urls,
            "finalDatasets": self.final_dataset_urls,
            "endTime": self.end_time,
            "datasetUrl": dataset_url,
            "datasetName": self.main_dataset_paths[0].rsplit("/", 1)[-1],
            "finalDatasetUrl": final_url,
            "taskDescription": f"Round {self.round}: {self.title}",
        }


def parse_current_round(value: Optional[str]) -> int:
    """Stored setting -> round number. Unset or garbage means round 1."""
    if value is None:
        return 1
    try:
        return int(str(value).strip())
    except ValueError:
        logger.warning("Ignoring unparsable current_round setting %r", value)
        return 1


def parse_end_time(value: str) -> Optional[float]:
    """ISO-8601 end time -> epoch seconds, or None when unparsable."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Naive values are written by us in UTC.
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def remaining_seconds(end_time: str, now: float) -> Optional[int]:
    end = parse_end_time(end_time)
    if end is None:
        return None
    return max(0, math.floor(end - now))


@dataclass
class DashboardService:
    db: DbClient
    cache: MemoryCache
    gateway: SignedUrlGateway
    settings: Settings
    clock: Callable[[], float] = field(default=time.time)

    def current_round(self) -> int:
        cached = self.cache.get(CURRENT_ROUND_KEY)
        if cached is not None:
            return cached
        try:
            value = self.db.get_setting(CURRENT_ROUND_KEY)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Could not read the current round") from exc
        round_number = parse_current_round(value)
        self.cache.set(CURRENT_ROUND_KEY, round_number, self.settings.round_cache_ttl_seconds)
        return round_number

    def round_content(self, round_number: int, track: str) -> RoundContentRecord:
        key = f"round_content_{round_number}_{track}"
        content = self.cache.get(key)
        if content is not None:
            return content
        try:
            content = self.db.get_round_content(round_number, track)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Could not read round content") from exc
        if content is None:
            raise RoundContentNotFound(
                f"Round content not found for round {round_number}, track {track}"
            )
        self.cache.set(key, content, self.settings.round_cache_ttl_seconds)
        return content

    def round_end_time(self) -> Optional[str]:
        cached = self.cache.get(ROUND_END_TIME_KEY, _MISSING)
        if cached is not _MISSING:
            return cached
        try:
            value = self.db.get_setting(ROUND_END_TIME_KEY) or None
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Could not read the round timer") from exc
        self.cache.set(ROUND_END_TIME_KEY, value, self.settings.round_cache_ttl_seconds)
        return value

    def final_datasets_released(self, end_time: Optional[str]) -> bool:
        if not end_time:
            return False
        remaining = remaining_seconds(end_time, self.clock())
        if remaining is None:
            logger.warning("Unparsable round_end_time %r; withholding final datasets", end_time)
            return False
        return remaining < self.settings.final_dataset_window_seconds

    def signed_url(self, path: str) -> Optional[str]:
        key = f"signed_url_{path}"
        cached = self.cache.get(key)
        if cached:
            return cached
        result = self.gateway.sign(path, self.settings.signed_url_expires_seconds)
        if isinstance(result, SignedUrl):
            self.cache.set(key, result.url, self.settings.signed_url_cache_ttl_seconds)
            return result.url
        return None

    def build(self, track: str) -> DashboardView:
        round_number = self.current_round()
        content = self.round_content(round_number, track)
        end_time = self.round_end_time()

        main_paths = main_dataset_paths(track, round_number, content.dataset_prefix)
        final_paths = final_dataset_paths(track, content.dataset_prefix)

        released = self.final_datasets_released(end_time)
        final_urls: list[Optional[str]] = [None] * len(final_paths)
        if released:
            final_urls = [self.signed_url(path) for path in final_paths]
        main_urls = [self.signed_url(path) for path in main_paths]

        return DashboardView(
            round=round_number,
            title=content.title,
            description=content.description,
            questions=content.questions,
            main_dataset_paths=main_paths,
            main_datasets=main_urls,
            final_datasets=final_urls,
            end_time=end_time,
            final_released=released,
        )
