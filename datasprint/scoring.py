"""
Admin scoring.

A team's score record carries two sets of sub-scores: five judging criteria
and four per-round scores. Every write names one set; ``total_score`` is
recomputed from that set after merging the write over the stored values.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from typing import Iterable, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from datasprint.db import DbClient, ScoreRecord, SubmissionRecord, TeamRecord, UserRecord
from datasprint.errors import DatasprintError, UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CriteriaScores:
    visualization: Optional[float] = None
    prediction: Optional[float] = None
    feature: Optional[float] = None
    code: Optional[float] = None
    judges: Optional[float] = None

    def columns(self) -> dict[str, Optional[float]]:
        return {f"{f.name}_score": getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class RoundScores:
    round1: Optional[float] = None
    round2: Optional[float] = None
    round3: Optional[float] = None
    round4: Optional[float] = None

    def columns(self) -> dict[str, Optional[float]]:
        return {f"{f.name}_score": getattr(self, f.name) for f in fields(self)}


ScoreUpdate = Union[CriteriaScores, RoundScores]

CRITERIA_FIELDS = tuple(f.name for f in fields(CriteriaScores))
ROUND_FIELDS = tuple(f.name for f in fields(RoundScores))

# Short names accepted in bulk payloads.
CRITERIA_ALIASES = {
    "viz": "visualization",
    "pred": "prediction",
    "feat": "feature",
    "code": "code",
    "judge": "judges",
}


def _to_float(name: str, value) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Score {name!r} must be a number") from exc
    if not math.isfinite(result):
        raise ValidationError(f"Score {name!r} must be a number")
    return result


def score_update_from_fields(values: Mapping[str, object]) -> ScoreUpdate:
    """
    Pick the score shape for a partial update.

    Round-based wins as soon as any ``round1..round4`` key is present (with a
    non-null value); otherwise the criteria fields are used. Criteria keys
    may be given by full name or by their bulk aliases (``viz``, ``pred``...).
    """
    round_values = {
        name: _to_float(name, values[name])
        for name in ROUND_FIELDS
        if values.get(name) is not None
    }
    if round_values:
        return RoundScores(**round_values)

    criteria_values: dict[str, float] = {}
    for key, value in values.items():
        name = CRITERIA_ALIASES.get(key, key)
        if name in CRITERIA_FIELDS and value is not None:
            criteria_values[name] = _to_float(key, value)
    return CriteriaScores(**criteria_values)


@dataclass
class BatchResult:
    updated: list[ScoreRecord] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.updated)


class ScoringService:
    """Score reads and writes straight against the store (never cached)."""

    def __init__(self, db: DbClient):
        self.db = db

    def apply(self, team_id: str, update: ScoreUpdate) -> ScoreRecord:
        if not team_id:
            raise ValidationError("Missing teamId")
        try:
            current = self.db.get_score(team_id)
            merged: dict[str, float] = {}
            for column, value in update.columns().items():
                if value is None:
                    value = getattr(current, column, 0.0) if current else 0.0
                merged[column] = value or 0.0
            merged["total_score"] = sum(merged.values())
            return self.db.upsert_score(team_id, merged)
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable(f"Could not update score for team {team_id}") from exc

    def update_field(self, team_id: str, field_name: str, value) -> ScoreRecord:
        if field_name in ROUND_FIELDS:
            update: ScoreUpdate = RoundScores(**{field_name: _to_float(field_name, value)})
        elif field_name in CRITERIA_FIELDS:
            update = CriteriaScores(**{field_name: _to_float(field_name, value)})
        else:
            raise ValidationError("Invalid field")
        return self.apply(team_id, update)

    def apply_batch(self, updates: Iterable[tuple[str, ScoreUpdate]]) -> BatchResult:
        """Apply each team's update on its own; one failure does not stop the rest."""
        result = BatchResult()
        for team_id, update in updates:
            try:
                result.updated.append(self.apply(team_id, update))
            except DatasprintError as exc:
                logger.error("Score update for team %s failed: %s", team_id, exc)
                result.failed.append((team_id, exc.message))
        logger.info(
            "Batch score update: %d updated, %d failed",
            result.count,
            len(result.failed),
        )
        return result

    def list_scores(self) -> list[tuple[TeamRecord, Optional[ScoreRecord]]]:
        try:
            return self.db.list_teams_with_scores()
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to fetch scores") from exc

    def list_submissions(
        self,
    ) -> list[tuple[SubmissionRecord, Optional[TeamRecord], Optional[ScoreRecord]]]:
        try:
            teams = {team.team_id: (team, score) for team, score in self.db.list_teams_with_scores()}
            rows = []
            for submission in self.db.list_submissions():
                team, score = teams.get(submission.team_id, (None, None))
                rows.append((submission, team, score))
            return rows
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to fetch submissions") from exc

    def list_members(self) -> list[tuple[UserRecord, Optional[TeamRecord]]]:
        try:
            return self.db.list_members()
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable("Failed to fetch members") from exc
