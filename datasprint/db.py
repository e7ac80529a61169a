"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    create_engine,
    func,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

CURRENT_ROUND_KEY = "current_round"
ROUND_END_TIME_KEY = "round_end_time"

ROLE_ADMIN = "Admin"
ROLE_PARTICIPANT = "Participant"

CRITERIA_SCORE_COLUMNS = (
    "visualization_score",
    "prediction_score",
    "feature_score",
    "code_score",
    "judges_score",
)
ROUND_SCORE_COLUMNS = (
    "round1_score",
    "round2_score",
    "round3_score",
    "round4_score",
)
SCORE_COLUMNS = CRITERIA_SCORE_COLUMNS + ROUND_SCORE_COLUMNS + ("total_score",)


class DbClient(Protocol):
    """Interface for database access."""

    def get_setting(self, key: str) -> Optional[str]:
        ...

    def upsert_setting(self, key: str, value: str) -> "SettingRecord":
        ...

    def delete_setting(self, key: str) -> bool:
        ...

    def list_settings(self) -> list["SettingRecord"]:
        ...

    def get_round_content(
        self, round_id: int, track: str
    ) -> Optional["RoundContentRecord"]:
        ...

    def save_round_content(self, content: "RoundContentRecord") -> None:
        ...

    def create_team(self, team_name: str, group: str) -> "TeamRecord":
        ...

    def create_user(
        self,
        username: str,
        password: str,
        role: str = ROLE_PARTICIPANT,
        team_id: Optional[str] = None,
    ) -> "UserRecord":
        ...

    def get_user_by_username(self, username: str) -> Optional["UserRecord"]:
        ...

    def get_team(self, team_id: str) -> Optional["TeamRecord"]:
        ...

    def list_members(self) -> list[tuple["UserRecord", Optional["TeamRecord"]]]:
        ...

    def count_users(self) -> int:
        ...

    def list_teams_with_scores(
        self,
    ) -> list[tuple["TeamRecord", Optional["ScoreRecord"]]]:
        ...

    def get_score(self, team_id: str) -> Optional["ScoreRecord"]:
        ...

    def upsert_score(self, team_id: str, values: dict) -> "ScoreRecord":
        ...

    def create_submission(self, submission: "SubmissionRecord") -> "SubmissionRecord":
        ...

    def list_submissions(self) -> list["SubmissionRecord"]:
        ...


@dataclass
class SettingRecord:
    key: str
    value: str

    def as_dict(self) -> dict:
        return {"key": self.key, "value": self.value}


@dataclass
class RoundContentRecord:
    round_id: int
    track: str
    title: str
    description: str
    dataset_prefix: str
    questions: Any = None

    def as_dict(self) -> dict:
        return {
            "id": self.round_id,
            "track": self.track,
            "title": self.title,
            "description": self.description,
            "questions": self.questions,
            "datasetPrefix": self.dataset_prefix,
        }


@dataclass
class TeamRecord:
    team_id: str
    team_name: str
    group: str

    def as_dict(self) -> dict:
        return {"id": self.team_id, "team_name": self.team_name, "group": self.group}


@dataclass
class UserRecord:
    user_id: str
    username: str
    password: str
    role: str
    team_id: Optional[str] = None


@dataclass
class ScoreRecord:
    team_id: str
    visualization_score: float = 0.0
    prediction_score: float = 0.0
    feature_score: float = 0.0
    code_score: float = 0.0
    judges_score: float = 0.0
    round1_score: float = 0.0
    round2_score: float = 0.0
    round3_score: float = 0.0
    round4_score: float = 0.0
    total_score: float = 0.0
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        payload = {"teamId": self.team_id}
        for column in SCORE_COLUMNS:
            payload[column] = getattr(self, column)
        payload["updated_at"] = self.updated_at
        return payload


@dataclass
class SubmissionRecord:
    team_id: str
    round: int
    image_url: str
    numeric_answer: float = 0.0
    answers: Any = field(default_factory=dict)
    submission_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    submitted_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.submission_id,
            "teamId": self.team_id,
            "round": self.round,
            "imageUrl": self.image_url,
            "numericAnswer": self.numeric_answer,
            "answers": self.answers,
            "submittedAt": self.submitted_at,
        }


def _check_score_columns(values: dict) -> None:
    unknown = set(values) - set(SCORE_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown score columns: {sorted(unknown)}")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.settings: Dict[str, str] = {}
        self.round_contents: Dict[tuple[int, str], RoundContentRecord] = {}
        self.teams: Dict[str, TeamRecord] = {}
        self.users: Dict[str, UserRecord] = {}
        self.scores: Dict[str, ScoreRecord] = {}
        self.submissions: list[SubmissionRecord] = []

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.settings.clear()
        self.round_contents.clear()
        self.teams.clear()
        self.users.clear()
        self.scores.clear()
        self.submissions.clear()

    def get_setting(self, key: str) -> Optional[str]:
        return self.settings.get(key)

    def upsert_setting(self, key: str, value: str) -> SettingRecord:
        self.settings[key] = value
        return SettingRecord(key=key, value=value)

    def delete_setting(self, key: str) -> bool:
        return self.settings.pop(key, None) is not None

    def list_settings(self) -> list[SettingRecord]:
        return [SettingRecord(key=k, value=v) for k, v in sorted(self.settings.items())]

    def get_round_content(
        self, round_id: int, track: str
    ) -> Optional[RoundContentRecord]:
        return self.round_contents.get((round_id, track))

    def save_round_content(self, content: RoundContentRecord) -> None:
        self.round_contents[(content.round_id, content.track)] = content

    def create_team(self, team_name: str, group: str) -> TeamRecord:
        team = TeamRecord(team_id=uuid.uuid4().hex, team_name=team_name, group=group)
        self.teams[team.team_id] = team
        return team

    def create_user(
        self,
        username: str,
        password: str,
        role: str = ROLE_PARTICIPANT,
        team_id: Optional[str] = None,
    ) -> UserRecord:
        if any(u.username == username for u in self.users.values()):
            raise ValueError(f"User {username!r} already exists")
        user = UserRecord(
            user_id=uuid.uuid4().hex,
            username=username,
            password=password,
            role=role,
            team_id=team_id,
        )
        self.users[user.user_id] = user
        return user

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def get_team(self, team_id: str) -> Optional[TeamRecord]:
        return self.teams.get(team_id)

    def list_members(self) -> list[tuple[UserRecord, Optional[TeamRecord]]]:
        members = [
            (user, self.teams.get(user.team_id) if user.team_id else None)
            for user in self.users.values()
            if user.role == ROLE_PARTICIPANT
        ]
        return sorted(members, key=lambda item: item[0].username)

    def count_users(self) -> int:
        return len(self.users)

    def list_teams_with_scores(
        self,
    ) -> list[tuple[TeamRecord, Optional[ScoreRecord]]]:
        teams = sorted(self.teams.values(), key=lambda t: t.team_name)
        return [(team, self.scores.get(team.team_id)) for team in teams]

    def get_score(self, team_id: str) -> Optional[ScoreRecord]:
        return self.scores.get(team_id)

    def upsert_score(self, team_id: str, values: dict) -> ScoreRecord:
        _check_score_columns(values)
        record = self.scores.get(team_id)
        if record is None:
            record = ScoreRecord(team_id=team_id)
            self.scores[team_id] = record
        for column, value in values.items():
            setattr(record, column, float(value))
        record.updated_at = time.time()
        return record

    def create_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        self.submissions.append(submission)
        return submission

    def list_submissions(self) -> list[SubmissionRecord]:
        return sorted(self.submissions, key=lambda s: s.submitted_at, reverse=True)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_score_record(self, row: "ScoreRow") -> ScoreRecord:
        record = ScoreRecord(team_id=row.team_id, updated_at=row.updated_at)
        for column in SCORE_COLUMNS:
            setattr(record, column, getattr(row, column) or 0.0)
        return record

    def _to_team_record(self, row: "TeamRow") -> TeamRecord:
        return TeamRecord(team_id=row.id, team_name=row.team_name, group=row.group)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.id,
            username=row.username,
            password=row.password,
            role=row.role,
            team_id=row.team_id,
        )

    def _to_submission_record(self, row: "SubmissionRow") -> SubmissionRecord:
        return SubmissionRecord(
            submission_id=row.id,
            team_id=row.team_id,
            round=row.round,
            image_url=row.image_url,
            numeric_answer=row.numeric_answer,
            answers=row.answers,
            submitted_at=row.submitted_at,
        )

    def get_setting(self, key: str) -> Optional[str]:
        with self.Session() as session:
            row = session.get(SystemSettingRow, key)
            return row.value if row else None

    def upsert_setting(self, key: str, value: str) -> SettingRecord:
        with self.Session() as session:
            row = session.get(SystemSettingRow, key)
            if row:
                row.value = value
            else:
                session.add(SystemSettingRow(key=key, value=value))
            session.commit()
        return SettingRecord(key=key, value=value)

    def delete_setting(self, key: str) -> bool:
        with self.Session() as session:
            row = session.get(SystemSettingRow, key)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_settings(self) -> list[SettingRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(SystemSettingRow).order_by(SystemSettingRow.key.asc())
            ).scalars()
            return [SettingRecord(key=row.key, value=row.value) for row in rows]

    def get_round_content(
        self, round_id: int, track: str
    ) -> Optional[RoundContentRecord]:
        with self.Session() as session:
            row = session.get(RoundContentRow, (round_id, track))
            if not row:
                return None
            return RoundContentRecord(
                round_id=row.id,
                track=row.track,
                title=row.title,
                description=row.description,
                dataset_prefix=row.dataset_prefix,
                questions=row.questions,
            )

    def save_round_content(self, content: RoundContentRecord) -> None:
        with self.Session() as session:
            row = session.get(RoundContentRow, (content.round_id, content.track))
            if row is None:
                row = RoundContentRow(id=content.round_id, track=content.track)
                session.add(row)
            row.title = content.title
            row.description = content.description
            row.dataset_prefix = content.dataset_prefix
            row.questions = content.questions
            session.commit()

    def create_team(self, team_name: str, group: str) -> TeamRecord:
        with self.Session() as session:
            row = TeamRow(id=uuid.uuid4().hex, team_name=team_name, group=group)
            session.add(row)
            session.commit()
            return self._to_team_record(row)

    def create_user(
        self,
        username: str,
        password: str,
        role: str = ROLE_PARTICIPANT,
        team_id: Optional[str] = None,
    ) -> UserRecord:
        with self.Session() as session:
            row = UserRow(
                id=uuid.uuid4().hex,
                username=username,
                password=password,
                role=role,
                team_id=team_id,
            )
            session.add(row)
            session.commit()
            return self._to_user_record(row)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.username == username)
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def get_team(self, team_id: str) -> Optional[TeamRecord]:
        with self.Session() as session:
            row = session.get(TeamRow, team_id)
            return self._to_team_record(row) if row else None

    def list_members(self) -> list[tuple[UserRecord, Optional[TeamRecord]]]:
        with self.Session() as session:
            stmt = (
                select(UserRow, TeamRow)
                .outerjoin(TeamRow, UserRow.team_id == TeamRow.id)
                .where(UserRow.role == ROLE_PARTICIPANT)
                .order_by(UserRow.username.asc())
            )
            return [
                (self._to_user_record(user), self._to_team_record(team) if team else None)
                for user, team in session.execute(stmt).all()
            ]

    def count_users(self) -> int:
        with self.Session() as session:
            return session.execute(select(func.count()).select_from(UserRow)).scalar_one()

    def list_teams_with_scores(
        self,
    ) -> list[tuple[TeamRecord, Optional[ScoreRecord]]]:
        with self.Session() as session:
            stmt = (
                select(TeamRow, ScoreRow)
                .outerjoin(ScoreRow, ScoreRow.team_id == TeamRow.id)
                .order_by(TeamRow.team_name.asc())
            )
            return [
                (self._to_team_record(team), self._to_score_record(score) if score else None)
                for team, score in session.execute(stmt).all()
            ]

    def get_score(self, team_id: str) -> Optional[ScoreRecord]:
        with self.Session() as session:
            row = session.get(ScoreRow, team_id)
            return self._to_score_record(row) if row else None

    def upsert_score(self, team_id: str, values: dict) -> ScoreRecord:
        _check_score_columns(values)
        with self.Session() as session:
            row = session.get(ScoreRow, team_id)
            if row is None:
                row = ScoreRow(team_id=team_id)
                for column in SCORE_COLUMNS:
                    setattr(row, column, 0.0)
                session.add(row)
            for column, value in values.items():
                setattr(row, column, float(value))
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_score_record(row)

    def create_submission(self, submission: SubmissionRecord) -> SubmissionRecord:
        with self.Session() as session:
            session.add(
                SubmissionRow(
                    id=submission.submission_id,
                    team_id=submission.team_id,
                    round=submission.round,
                    image_url=submission.image_url,
                    numeric_answer=submission.numeric_answer,
                    answers=submission.answers,
                    submitted_at=submission.submitted_at,
                )
            )
            session.commit()
        return submission

    def list_submissions(self) -> list[SubmissionRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(SubmissionRow).order_by(SubmissionRow.submitted_at.desc())
            ).scalars()
            return [self._to_submission_record(row) for row in rows]


Base = declarative_base()


class TeamRow(Base):
    __tablename__ = "teams"

    id = Column(String, primary_key=True)
    team_name = Column(String, nullable=False, index=True)
    group = Column(String, nullable=False)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_PARTICIPANT)
    team_id = Column(String, ForeignKey("teams.id"), nullable=True)


class ScoreRow(Base):
    __tablename__ = "scores"

    team_id = Column(String, ForeignKey("teams.id"), primary_key=True)
    visualization_score = Column(Float, nullable=False, default=0.0)
    prediction_score = Column(Float, nullable=False, default=0.0)
    feature_score = Column(Float, nullable=False, default=0.0)
    code_score = Column(Float, nullable=False, default=0.0)
    judges_score = Column(Float, nullable=False, default=0.0)
    round1_score = Column(Float, nullable=False, default=0.0)
    round2_score = Column(Float, nullable=False, default=0.0)
    round3_score = Column(Float, nullable=False, default=0.0)
    round4_score = Column(Float, nullable=False, default=0.0)
    total_score = Column(Float, nullable=False, default=0.0)
    updated_at = Column(Float, nullable=False, default=time.time)


class SubmissionRow(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True)
    team_id = Column(String, ForeignKey("teams.id"), nullable=False, index=True)
    round = Column(Integer, nullable=False)
    image_url = Column(String, nullable=False)
    numeric_answer = Column(Float, nullable=False, default=0.0)
    answers = Column(JSON, nullable=False)
    submitted_at = Column(Float, nullable=False, index=True)


class RoundContentRow(Base):
    __tablename__ = "round_contents"

    id = Column(Integer, primary_key=True, autoincrement=False)
    track = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    questions = Column(JSON, nullable=True)
    dataset_prefix = Column(String, nullable=False)


class SystemSettingRow(Base):
    __tablename__ = "system_settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
