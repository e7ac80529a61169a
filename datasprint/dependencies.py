"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends, Request

from datasprint.cache import MemoryCache
from datasprint.config import Settings, get_settings
from datasprint.dashboard import DashboardService
from datasprint.db import DbClient, InMemoryDbClient, PostgresDbClient
from datasprint.rounds import RoundControl
from datasprint.scoring import ScoringService
from datasprint.signed_urls import SignedUrlGateway
from datasprint.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from datasprint.submissions import SubmissionService

_db_client: DbClient | None = None
_storage_clients: dict[str, StorageClient] = {}


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so settings and scores persist across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def _storage_for(bucket: str) -> StorageClient:
    client = _storage_clients.get(bucket)
    if client:
        return client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_endpoint:
        client = InMemoryStorageClient(bucket=bucket)
    else:
        public_base = ""
        if settings.storage_public_base_url:
            public_base = f"{settings.storage_public_base_url.rstrip('/')}/{bucket}"
        client = S3StorageClient(
            bucket=bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint,
            access_key_id=settings.storage_access_key_id or "",
            secret_access_key=settings.storage_secret_access_key or "",
            public_base_url=public_base,
        )
    _storage_clients[bucket] = client
    return client


def get_dataset_storage() -> StorageClient:
    return _storage_for(get_settings().datasets_bucket)


def get_submission_storage() -> StorageClient:
    return _storage_for(get_settings().submissions_bucket)


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with."""
    return request.app.state.settings


def get_cache(request: Request) -> MemoryCache:
    """The cache owned by the running app (built in ``create_app``)."""
    return request.app.state.cache


def get_dashboard_service(
    db: DbClient = Depends(get_db_client),
    cache: MemoryCache = Depends(get_cache),
    storage: StorageClient = Depends(get_dataset_storage),
    settings: Settings = Depends(get_app_settings),
) -> DashboardService:
    return DashboardService(
        db=db, cache=cache, gateway=SignedUrlGateway(storage), settings=settings
    )


def get_submission_service(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_submission_storage),
) -> SubmissionService:
    return SubmissionService(db=db, storage=storage)


def get_scoring_service(db: DbClient = Depends(get_db_client)) -> ScoringService:
    return ScoringService(db)


def get_round_control(db: DbClient = Depends(get_db_client)) -> RoundControl:
    return RoundControl(db)
