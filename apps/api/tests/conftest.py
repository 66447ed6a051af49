"""Shared fixtures: in-memory index, fake Gitea/Moqui hosts and an app wired to them."""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

from fakes import WEBHOOK_SECRET, FakeGitea, FakeMoqui

# settings are cached on first use; pin the test environment before importing the app
_DB_PATH = Path(tempfile.mkdtemp(prefix="integration-service-tests-")) / "ledger.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["INDEX_BACKEND"] = "memory"
os.environ["BOOTSTRAP_ON_STARTUP"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["GITEA_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["NOTIFICATION_WEBHOOKS"] = ""
os.environ["NOTIFICATION_EMAIL"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from integration_service.db import models  # noqa: F401  registers the ledger tables
from integration_service.db.session import Base
from integration_service.dependencies import get_db, get_pipeline
from integration_service.providers.channels import ConsoleChannel
from integration_service.providers.gitea import GiteaProvider
from integration_service.providers.memory_index import InMemoryIndex
from integration_service.providers.moqui import MoquiProvider
from integration_service.services.notifications import NotificationEmitter
from integration_service.services.pipeline import SubmissionPipeline
from integration_service.services.reference_data import seed_rows

# one connection per session so every TestClient event loop gets its own
test_engine = create_async_engine(os.environ["DATABASE_URL"], poolclass=NullPool)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def _reset_tables() -> None:
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def gitea_host() -> FakeGitea:
    return FakeGitea()


@pytest.fixture
def moqui_host() -> FakeMoqui:
    return FakeMoqui()


@pytest.fixture
def gitea(gitea_host: FakeGitea) -> GiteaProvider:
    return GiteaProvider(
        base_url="http://gitea.test",
        token="test-token",
        owner=gitea_host.owner,
        repo=gitea_host.repo,
        transport=httpx.MockTransport(gitea_host),
    )


@pytest.fixture
def moqui(moqui_host: FakeMoqui) -> MoquiProvider:
    return MoquiProvider(
        base_url="http://moqui.test",
        api_path="/rest/s1/mantle/party",
        username="admin",
        password="admin",
        transport=httpx.MockTransport(moqui_host),
    )


@pytest.fixture
def index() -> InMemoryIndex:
    idx = InMemoryIndex()
    idx.reference = seed_rows()
    return idx


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def pipeline(gitea: GiteaProvider, moqui: MoquiProvider, index: InMemoryIndex, sleeper: SleepRecorder) -> SubmissionPipeline:
    return SubmissionPipeline(
        gitea=gitea,
        index=index,
        moqui=moqui,
        notifier=NotificationEmitter(index, [ConsoleChannel()]),
        merge_retry_attempts=3,
        merge_retry_delay=2.0,
        sleep=sleeper,
    )


@pytest.fixture
def client(pipeline: SubmissionPipeline):
    from integration_service.main import app

    asyncio.run(_reset_tables())
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def contact_form() -> dict:
    return {
        "fullName": "Jane Doe",
        "emailAddress": "jane.doe@acme.io",
        "phoneNumber": "+212 612-345678",
        "company": "Acme Corp",
        "jobTitle": "CTO",
        "department": "IT",
        "city": "Rabat",
        "stateProvince": "MA-04",
        "country": "MA",
        "tags": "vip, partner",
    }
