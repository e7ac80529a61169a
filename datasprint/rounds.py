"""
Round control: which round is live and when it ends.

Writes go straight to the settings table. Dashboard readers pick the change
up when their cached copy expires.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from datasprint.db import CURRENT_ROUND_KEY, ROUND_END_TIME_KEY, DbClient, SettingRecord
from datasprint.errors import UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)

# Upper bound for a round timer, in hours.
MAX_TIMER_HOURS = 24 * 365


def format_end_time(timestamp: float) -> str:
    """Epoch seconds -> ``2026-01-01T12:00:00.000Z``."""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RoundControl:
    def __init__(self, db: DbClient, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock

    def initiate_round(self, round_number: int) -> SettingRecord:
        if not isinstance(round_number, int) or isinstance(round_number, bool) or round_number < 1:
            raise ValidationError("Missing round number")
        try:
            setting = self.db.upsert_setting(CURRENT_ROUND_KEY, str(round_number))
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to initiate round") from exc
        logger.info("Round %d initiated", round_number)
        return setting

    def set_round_timer(self, duration_hours: float) -> str:
        if duration_hours is None or duration_hours != duration_hours or duration_hours < 0:
            raise ValidationError("Missing duration")
        if duration_hours > MAX_TIMER_HOURS:
            raise ValidationError("Invalid duration")
        try:
            end_time = format_end_time(self.clock() + duration_hours * 3600)
        except (OverflowError, ValueError, OSError) as exc:
            raise ValidationError("Invalid duration") from exc
        try:
            self.db.upsert_setting(ROUND_END_TIME_KEY, end_time)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to set timer") from exc
        logger.info("Round timer set to end at %s", end_time)
        return end_time

    def stop_round_timer(self) -> bool:
        """Clear the timer. Returns False when no timer was running; never fails for that."""
        try:
            removed = self.db.delete_setting(ROUND_END_TIME_KEY)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to stop timer") from exc
        logger.info("Round timer %s", "stopped" if removed else "already stopped")
        return removed

    def list_settings(self) -> list[SettingRecord]:
        try:
            return self.db.list_settings()
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to fetch settings") from exc
