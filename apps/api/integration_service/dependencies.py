import time
import uuid
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from integration_service.core import get_settings
from integration_service.db.session import async_session
from integration_service.providers import build_channels, get_gitea_provider, get_moqui_provider, get_record_index
from integration_service.services.notifications import NotificationEmitter
from integration_service.services.pipeline import SubmissionPipeline, WebhookDispatcher


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def new_request_id() -> str:
    return f"req-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def get_request_id(request: Request) -> str:
    """Correlation id set by the request-id middleware (X-Request-ID or generated)."""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("X-Request-ID") or new_request_id()
        request.state.request_id = request_id
    return request_id


@lru_cache
def get_pipeline() -> SubmissionPipeline:
    s = get_settings()
    index = get_record_index()
    return SubmissionPipeline(
        gitea=get_gitea_provider(),
        index=index,
        moqui=get_moqui_provider(),
        notifier=NotificationEmitter(index, build_channels(s)),
        merge_retry_attempts=s.merge_retry_attempts,
        merge_retry_delay=s.merge_retry_delay_seconds,
    )


def get_dispatcher(pipeline: SubmissionPipeline = Depends(get_pipeline)) -> WebhookDispatcher:
    return WebhookDispatcher(pipeline)


def get_notifier(pipeline: SubmissionPipeline = Depends(get_pipeline)) -> NotificationEmitter:
    return pipeline.notifier
