"""
HTTP routes for the contest API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from datasprint.auth import TokenClaims, get_current_user, login, require_admin
from datasprint.config import Settings
from datasprint.dashboard import DashboardService
from datasprint.db import DbClient, ScoreRecord, TeamRecord
from datasprint.dependencies import (
    get_app_settings,
    get_dashboard_service,
    get_db_client,
    get_round_control,
    get_scoring_service,
    get_submission_service,
)
from datasprint.errors import UpstreamUnavailable, ValidationError
from datasprint.rounds import RoundControl
from datasprint.schemas import (
    BulkFailure,
    BulkScoreRequest,
    BulkScoreResponse,
    DashboardResponse,
    DbHealthResponse,
    HealthResponse,
    InitiateRoundRequest,
    InitiateRoundResponse,
    LoginRequest,
    LoginResponse,
    MemberPayload,
    RoundTimerRequest,
    RoundTimerResponse,
    ScoreFieldUpdate,
    ScorePayload,
    SettingPayload,
    SubmissionPayload,
    SubmitResponse,
    TeamPayload,
    TeamScoresPayload,
    UserPayload,
)
from datasprint.scoring import ScoringService, score_update_from_fields
from datasprint.submissions import Artifact, SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()

DASHBOARD_CACHE_CONTROL = "private, max-age=30, stale-while-revalidate=60"


def _team_scores(team: TeamRecord, score: ScoreRecord | None) -> TeamScoresPayload:
    return TeamScoresPayload(
        id=team.team_id,
        team_name=team.team_name,
        group=team.group,
        scores=ScorePayload(**score.as_dict()) if score else None,
    )


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", message="DataSprint backend is running")


@router.get("/health/db", response_model=DbHealthResponse)
def health_db(db: DbClient = Depends(get_db_client)):
    try:
        user_count = db.count_users()
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable("Database connection failed") from exc
    return DbHealthResponse(status="success", user_count=user_count)


@router.post("/auth/login", response_model=LoginResponse)
def login_route(
    payload: LoginRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    token, claims = login(db, settings, payload.username, payload.password)
    return LoginResponse(token=token, user=UserPayload(**claims.as_dict()))


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    response: Response,
    user: TokenClaims = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
):
    if not user.group:
        raise ValidationError("User is not assigned to a track")
    view = service.build(user.group)
    response.headers["Cache-Control"] = DASHBOARD_CACHE_CONTROL
    return DashboardResponse(**view.as_dict())


@router.post("/submit", response_model=SubmitResponse)
async def submit(
    file: UploadFile | None = File(None),
    answers: str | None = Form(None),
    numeric_answer: str | None = Form(None, alias="numericAnswer"),
    user: TokenClaims = Depends(get_current_user),
    service: SubmissionService = Depends(get_submission_service),
):
    artifact = None
    if file is not None and file.filename:
        artifact = Artifact(
            filename=file.filename,
            data=await file.read(),
            content_type=file.content_type,
        )
    # Storage upload and store insert both block.
    record = await run_in_threadpool(
        service.submit,
        user.team_id,
        artifact,
        answers=answers,
        numeric_answer=numeric_answer,
    )
    return SubmitResponse(message="Submission received!", url=record.image_url)


@router.get("/admin/scores", response_model=list[TeamScoresPayload])
def get_scores(
    _: TokenClaims = Depends(require_admin),
    scoring: ScoringService = Depends(get_scoring_service),
):
    return [_team_scores(team, score) for team, score in scoring.list_scores()]


@router.post("/admin/scores", response_model=ScorePayload)
def update_score(
    payload: ScoreFieldUpdate,
    _: TokenClaims = Depends(require_admin),
    scoring: ScoringService = Depends(get_scoring_service),
):
    record = scoring.update_field(payload.team_id, payload.field, payload.value)
    return ScorePayload(**record.as_dict())


@router.post("/admin/scores/bulk", response_model=BulkScoreResponse)
def update_scores_bulk(
    payload: BulkScoreRequest,
    _: TokenClaims = Depends(require_admin),
    scoring: ScoringService = Depends(get_scoring_service),
):
    updates = [
        (item.team_id, score_update_from_fields(item.model_dump(exclude={"team_id"})))
        for item in payload.updates
    ]
    result = scoring.apply_batch(updates)
    return BulkScoreResponse(
        success=not result.failed,
        count=result.count,
        failed=[BulkFailure(team_id=team_id, message=msg) for team_id, msg in result.failed],
    )


@router.get("/admin/submissions", response_model=list[SubmissionPayload])
def get_submissions(
    _: TokenClaims = Depends(require_admin),
    scoring: ScoringService = Depends(get_scoring_service),
):
    return [
        SubmissionPayload(
            **submission.as_dict(),
            team=_team_scores(team, score) if team else None,
        )
        for submission, team, score in scoring.list_submissions()
    ]


@router.get("/admin/members", response_model=list[MemberPayload])
def get_members(
    _: TokenClaims = Depends(require_admin),
    scoring: ScoringService = Depends(get_scoring_service),
):
    members = scoring.list_members()
    logger.info("Found %d members", len(members))
    return [
        MemberPayload(
            id=user.user_id,
            username=user.username,
            role=user.role,
            team=TeamPayload(**team.as_dict()) if team else None,
        )
        for user, team in members
    ]


@router.get("/admin/settings", response_model=list[SettingPayload])
def get_system_settings(
    _: TokenClaims = Depends(require_admin),
    rounds: RoundControl = Depends(get_round_control),
):
    return [SettingPayload(**setting.as_dict()) for setting in rounds.list_settings()]


@router.post("/admin/round/initiate", response_model=InitiateRoundResponse)
def initiate_round(
    payload: InitiateRoundRequest,
    _: TokenClaims = Depends(require_admin),
    rounds: RoundControl = Depends(get_round_control),
):
    setting = rounds.initiate_round(payload.round)
    return InitiateRoundResponse(
        message=f"Round {payload.round} initiated successfully",
        setting=SettingPayload(**setting.as_dict()),
    )


@router.post("/admin/round/timer", response_model=RoundTimerResponse)
def round_timer(
    payload: RoundTimerRequest,
    _: TokenClaims = Depends(require_admin),
    rounds: RoundControl = Depends(get_round_control),
):
    if payload.action == "stop":
        if rounds.stop_round_timer():
            return RoundTimerResponse(message="Timer stopped successfully")
        return RoundTimerResponse(message="Timer cleared or already stopped")

    if payload.duration_hours is None:
        raise ValidationError("Missing duration")
    end_time = rounds.set_round_timer(payload.duration_hours)
    return RoundTimerResponse(message="Timer set successfully", end_time=end_time)
