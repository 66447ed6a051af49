import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from integration_service.core import AdapterError, get_settings, safe_error
from integration_service.dependencies import get_pipeline
from integration_service.schemas import DetailedHealthResponse, HealthResponse, ServiceHealth
from integration_service.services.pipeline import SubmissionPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_STARTED = time.monotonic()
# the pipeline cannot accept submissions without these
CRITICAL_SERVICES = ("gitea", "opensearch")


async def _check(probe: Callable[[], Awaitable[dict[str, Any]]]) -> ServiceHealth:
    try:
        info = await probe()
    except AdapterError as e:
        logger.warning("Health probe failed: %s", safe_error(e))
        return ServiceHealth(status="unhealthy", error=str(e))
    cluster = info.get("cluster") if isinstance(info.get("cluster"), dict) else None
    return ServiceHealth(
        status="healthy",
        version=info.get("version"),
        cluster_status=cluster.get("status") if cluster else None,
    )


async def _service_checks(pipeline: SubmissionPipeline, include_downstream: bool) -> dict[str, ServiceHealth]:
    probes: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
        "gitea": pipeline.gitea.ping,
        "opensearch": pipeline.index.health,
    }
    if include_downstream:
        probes["moqui"] = pipeline.moqui.health
    results = await asyncio.gather(*(_check(p) for p in probes.values()))
    return dict(zip(probes, results))


def _status_message(services: dict[str, ServiceHealth]) -> tuple[int, str]:
    unhealthy = [name for name in CRITICAL_SERVICES if services[name].status != "healthy"]
    if unhealthy:
        return 503, f"Critical services unhealthy: {', '.join(unhealthy)}"
    return 200, "OK"


@router.get("", response_model=HealthResponse)
async def health(pipeline: SubmissionPipeline = Depends(get_pipeline)):
    services = await _service_checks(pipeline, include_downstream=False)
    status_code, message = _status_message(services)
    resp = HealthResponse(
        message=message,
        timestamp=datetime.now(timezone.utc),
        uptime=time.monotonic() - _STARTED,
        services=services,
    )
    if status_code != 200:
        return JSONResponse(status_code=status_code, content=resp.model_dump(mode="json", by_alias=True))
    return resp


@router.get("/detailed", response_model=DetailedHealthResponse)
async def health_detailed(pipeline: SubmissionPipeline = Depends(get_pipeline)):
    """Adds the downstream party system (informational only) and a configuration summary."""
    s = get_settings()
    services = await _service_checks(pipeline, include_downstream=True)
    status_code, message = _status_message(services)
    resp = DetailedHealthResponse(
        message=message,
        timestamp=datetime.now(timezone.utc),
        uptime=time.monotonic() - _STARTED,
        services=services,
        version="1.0.0",
        environment=s.environment,
        configuration={
            "giteaUrl": s.gitea_url,
            "giteaRepository": f"{s.gitea_repo_owner}/{s.gitea_repo_name}",
            "indexBackend": s.index_backend,
            "opensearchUrl": s.opensearch_url,
            "moquiUrl": s.moqui_url,
            "notificationWebhooks": len(s.notification_webhook_list),
            "emailNotifications": bool(s.notification_email and s.sendgrid_api_key),
        },
    )
    if status_code != 200:
        return JSONResponse(status_code=status_code, content=resp.model_dump(mode="json", by_alias=True))
    return resp
