"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from pk55_api.config import get_settings
from pk55_api.db import DbClient, InMemoryDbClient, PostgresDbClient
from pk55_api.scheduler import DiscountScheduler
from pk55_api.storage import (
    InMemoryMediaStorageClient,
    MediaStorageClient,
    S3MediaStorageClient,
)

_db_client: DbClient | None = None
_media_client: MediaStorageClient | None = None
_scheduler: DiscountScheduler | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
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


def get_media_client() -> MediaStorageClient:
    global _media_client
    if _media_client:
        return _media_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.media_bucket:
        _media_client = InMemoryMediaStorageClient(folder=settings.media_folder)
    else:
        _media_client = S3MediaStorageClient(
            bucket=settings.media_bucket,
            region=settings.media_region or "",
            endpoint=settings.media_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.media_public_base_url,
            folder=settings.media_folder,
        )
    return _media_client


def get_scheduler() -> DiscountScheduler:
    """
    Return the process-wide discount scheduler bound to the shared DB client.
    """
    global _scheduler
    if _scheduler:
        return _scheduler
    _scheduler = DiscountScheduler(get_db_client())
    return _scheduler
