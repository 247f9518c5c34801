"""Shared test fixtures and configuration for pytest."""

import json
from collections.abc import Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from council import db, runner
from council.config import settings
from council.errors import ModelBackendError
from council.models import Base, Project

DEFAULT_ACTIONS = [
    {
        "title": "Simplify checkout",
        "description": "Cut the checkout form to a single page.",
        "justification": "Most drop-off happens on step two.",
    },
    {
        "title": "Interview churned users",
        "description": "Run five interviews with users who churned last month.",
        "justification": "Qualitative signal is missing from the data.",
    },
    {
        "title": "Launch referral pilot",
        "description": "Offer a small credit for referrals in one region.",
        "justification": "Competitors grow mainly through referrals.",
    },
]


class FakeModel:
    """Stand-in model backend recording every call."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail_markers: set[str] = set()
        self.synthesis_response: str = json.dumps({"actions": DEFAULT_ACTIONS})
        self.synthesis_error: Exception | None = None
        self.closed = 0

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_message": user_message,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )
        if json_mode:
            if self.synthesis_error is not None:
                raise self.synthesis_error
            return self.synthesis_response
        for marker in self.fail_markers:
            if marker in system_prompt:
                raise ModelBackendError("quota exceeded")
        return "## Findings\n- Checkout is too long\n\n## Recommendation\n- Shorten it"

    async def aclose(self) -> None:
        self.closed += 1

    def synthesis_calls(self) -> list[dict]:
        return [c for c in self.calls if c["json_mode"]]

    def analysis_calls(self) -> list[dict]:
        return [c for c in self.calls if not c["json_mode"]]


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep Redis out of every test."""
    monkeypatch.setattr(settings, "redis_events_enabled", False)
    monkeypatch.setattr(settings, "redis_rate_limit_enabled", False)


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Temporary SQLite database wired into the session factory."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'council.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    monkeypatch.setattr(db, "async_session_factory", async_sessionmaker(engine, expire_on_commit=False))
    yield engine
    await engine.dispose()


@pytest.fixture
def fake_model(monkeypatch: pytest.MonkeyPatch) -> FakeModel:
    model = FakeModel()
    monkeypatch.setattr(runner, "get_chat_client", lambda: model)
    return model


@pytest_asyncio.fixture
async def project(database) -> Project:
    async with db.get_session() as session:
        created = await db.create_project(
            session, "user-1", "Checkout Revamp", "Reduce drop-off in the checkout flow"
        )
    return created


@pytest.fixture
def add_agent(database) -> Callable:
    """Factory: add_agent(project_id, name, type, prompt=None) -> agent id."""

    async def _add(project_id: str, name: str, agent_type: str, prompt: str | None = None) -> str:
        async with db.get_session() as session:
            (agent,) = await db.add_agents(
                session,
                project_id,
                [
                    {
                        "name": name,
                        "type": agent_type,
                        "system_prompt": prompt or f"You are the {name}.",
                    }
                ],
            )
            return agent.id

    return _add


@pytest.fixture
def add_actions(database) -> Callable:
    """Factory: add_actions(project_id, n) -> list of pending action ids."""

    async def _add(project_id: str, n: int = 2) -> list[str]:
        async with db.get_session() as session:
            actions = await db.add_proposed_actions(session, project_id, DEFAULT_ACTIONS[:n])
            return [a.id for a in actions]

    return _add
