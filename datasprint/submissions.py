"""
Submission intake: store the uploaded artifact and append a submission row.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from datasprint.dashboard import parse_current_round
from datasprint.db import CURRENT_ROUND_KEY, DbClient, SubmissionRecord
from datasprint.errors import UpstreamUnavailable, ValidationError
from datasprint.storage import StorageClient, StorageError

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    filename: str
    data: bytes
    content_type: Optional[str] = None


def parse_answers(raw: Any) -> Any:
    """Best effort: a JSON string or an already-decoded value, else ``{}``."""
    if raw is None or raw == "":
        return {}
    if not isinstance(raw, (str, bytes)):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Failed to parse answers payload; storing empty answers")
        return {}


def parse_numeric_answer(raw: Any) -> float:
    if raw is None or raw == "":
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric numericAnswer %r", raw)
        return 0.0
    if not math.isfinite(value):
        logger.warning("Ignoring non-finite numericAnswer %r", raw)
        return 0.0
    return value


def build_storage_key(team_id: str, round_number: int, filename: str, now: float) -> str:
    millis = int(now * 1000)
    return f"{team_id}_round{round_number}_{millis}_{filename}"


class SubmissionService:
    def __init__(
        self,
        db: DbClient,
        storage: StorageClient,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.storage = storage
        self.clock = clock

    def submit(
        self,
        team_id: Optional[str],
        artifact: Optional[Artifact],
        answers: Any = None,
        numeric_answer: Any = None,
    ) -> SubmissionRecord:
        if not team_id:
            raise ValidationError("Submitting user is not on a team")
        if artifact is None or not artifact.filename:
            raise ValidationError("No file uploaded")

        # Read the round uncached: the row must record the round that is live now.
        try:
            round_number = parse_current_round(self.db.get_setting(CURRENT_ROUND_KEY))
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Could not read the current round") from exc

        key = build_storage_key(team_id, round_number, artifact.filename, self.clock())
        try:
            self.storage.upload_bytes(key, artifact.data, content_type=artifact.content_type)
        except StorageError as exc:
            logger.error("Upload of %s failed: %s", key, exc)
            raise UpstreamUnavailable("Upload failed") from exc
        url = self.storage.public_url(key)

        record = SubmissionRecord(
            team_id=team_id,
            round=round_number,
            image_url=url,
            numeric_answer=parse_numeric_answer(numeric_answer),
            answers=parse_answers(answers),
        )
        try:
            self.db.create_submission(record)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Could not record submission") from exc
        logger.info("Team %s submitted %s for round %d", team_id, key, round_number)
        return record
