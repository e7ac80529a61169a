"""
Pydantic schemas for the contest API.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from datasprint.rounds import MAX_TIMER_HOURS


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str


class UserPayload(CamelModel):
    id: str
    username: str
    role: str
    team_id: Optional[str] = Field(default=None, alias="teamId")
    group: Optional[str] = None


class LoginResponse(BaseModel):
    token: str
    user: UserPayload


class DashboardResponse(CamelModel):
    round: int
    title: str
    description: str
    questions: Any = None
    main_datasets: list[str] = Field(alias="mainDatasets")
    final_datasets: list[str] = Field(alias="finalDatasets")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    dataset_url: Optional[str] = Field(default=None, alias="datasetUrl")
    dataset_name: Optional[str] = Field(default=None, alias="datasetName")
    final_dataset_url: Optional[str] = Field(default=None, alias="finalDatasetUrl")
    task_description: Optional[str] = Field(default=None, alias="taskDescription")


class SubmitResponse(BaseModel):
    message: str
    url: str


class ScoreFieldUpdate(CamelModel):
    team_id: str = Field(..., min_length=1, alias="teamId")
    field: str
    value: float


class BulkScoreItem(CamelModel):
    team_id: str = Field(..., min_length=1, alias="teamId")
    viz: Optional[float] = None
    pred: Optional[float] = None
    feat: Optional[float] = None
    code: Optional[float] = None
    judge: Optional[float] = None
    round1: Optional[float] = None
    round2: Optional[float] = None
    round3: Optional[float] = None
    round4: Optional[float] = None


class BulkScoreRequest(BaseModel):
    updates: list[BulkScoreItem]


class BulkFailure(CamelModel):
    team_id: str = Field(alias="teamId")
    message: str


class BulkScoreResponse(BaseModel):
    success: bool
    count: int
    failed: list[BulkFailure] = Field(default_factory=list)


class ScorePayload(CamelModel):
    team_id: str = Field(alias="teamId")
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


class TeamScoresPayload(BaseModel):
    id: str
    team_name: str
    group: str
    scores: Optional[ScorePayload] = None


class TeamPayload(BaseModel):
    id: str
    team_name: str
    group: str


class SubmissionPayload(CamelModel):
    id: str
    team_id: str = Field(alias="teamId")
    round: int
    image_url: str = Field(alias="imageUrl")
    numeric_answer: float = Field(alias="numericAnswer")
    answers: Any = None
    submitted_at: float = Field(alias="submittedAt")
    team: Optional[TeamScoresPayload] = None


class MemberPayload(BaseModel):
    id: str
    username: str
    role: str
    team: Optional[TeamPayload] = None


class SettingPayload(BaseModel):
    key: str
    value: str


class InitiateRoundRequest(BaseModel):
    round: int = Field(..., ge=1)


class InitiateRoundResponse(BaseModel):
    message: str
    setting: SettingPayload


class RoundTimerRequest(CamelModel):
    action: Literal["start", "stop"] = "start"
    duration_hours: Optional[float] = Field(
        default=None, ge=0, le=MAX_TIMER_HOURS, alias="durationHours"
    )


class RoundTimerResponse(CamelModel):
    message: str
    end_time: Optional[str] = Field(default=None, alias="endTime")


class HealthResponse(BaseModel):
    status: Literal["ok"]
    message: str


class DbHealthResponse(CamelModel):
    status: Literal["success"]
    user_count: int = Field(alias="userCount")
