"""Test fixtures — mock Supabase client, scripted language-model backend, and wiring."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from prelix.config import Settings
from prelix.core.controller import ClarificationController
from prelix.core.estimator import ConfidenceEstimator
from prelix.core.optimizer import PromptOptimizer
from prelix.core.quota import QuotaGate
from prelix.core.selector import TemplateSelector
from prelix.core.templates import TemplateRepository
from prelix.core.transcript import TranscriptStore
from prelix.core.workflow import PromptWorkflow
from prelix.db.client import SupabaseClient
from prelix.llm.client import LLMClient

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
TOKENS = {"test-token": USER_ID, "other-token": OTHER_USER_ID}


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing."""

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {
            "prompt_templates": [],
            "template_usage": [],
            "chat_sessions": [],
            "chat_messages": [],
            "profiles": [],
        }
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        record = {
            "id": str(uuid4()),
            "created_at": datetime.now(timezone.utc).isoformat(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
            **data,
        }
        self._tables.setdefault(table, []).append(record)
        return record

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._tables.get(table, [])
        if filters:
            for key, value in filters.items():
                rows = [r for r in rows if r.get(key) == value]
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by, 0), reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return rows

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        for row in self._tables.get(table, []):
            if row["id"] == id:
                row.update(data)
                row["updated_at"] = datetime.now(timezone.utc).isoformat()
                return row
        raise ValueError(f"Row {id} not found in {table}")

    def delete(self, table: str, id: str) -> None:
        self._tables[table] = [r for r in self._tables.get(table, []) if r["id"] != id]

    def rpc(self, function: str, params: dict[str, Any] | None = None) -> Any:
        params = params or {}
        self.rpc_calls.append((function, params))
        if function == "can_create_chat_interface":
            profile = self._profile(params["_user_id"])
            if profile is None:
                return True
            return profile["has_unlimited_interfaces"] or profile["chat_interface_count"] < 5
        if function == "increment_chat_interface_count":
            profile = self._profile(params["_user_id"])
            if profile is None:
                profile = self.set_profile(params["_user_id"])
            profile["chat_interface_count"] += 1
            return None
        if function == "increment_template_usage":
            for row in self._tables["prompt_templates"]:
                if row["id"] == params["_template_id"]:
                    row["usage_count"] = row.get("usage_count", 0) + 1
            return None
        raise ValueError(f"Unknown function {function}")

    def get_user_id(self, access_token: str) -> str | None:
        return TOKENS.get(access_token)

    def _profile(self, user_id: str) -> dict[str, Any] | None:
        return next((p for p in self._tables["profiles"] if p["id"] == user_id), None)

    def set_profile(
        self, user_id: str, count: int = 0, unlimited: bool = False
    ) -> dict[str, Any]:
        """Create or replace a quota profile."""
        self._tables["profiles"] = [p for p in self._tables["profiles"] if p["id"] != user_id]
        profile = {
            "id": user_id,
            "chat_interface_count": count,
            "has_unlimited_interfaces": unlimited,
        }
        self._tables["profiles"].append(profile)
        return profile

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self._tables[table]

    def reset(self):
        for table in self._tables:
            self._tables[table] = []


class FakeLLM(LLMClient):
    """Scripted backend: returns queued replies in order and records every call."""

    def __init__(self, *replies: str | Exception):
        self.replies: list[str | Exception] = list(replies)
        self.calls: list[dict[str, Any]] = []
        self.json_mode = True
        self.default_model = "gpt-4o-mini"
        self.delay = 0.0

    def queue(self, *replies: str | Exception) -> None:
        self.replies.extend(replies)

    async def complete(
        self,
        system: str | None,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 800,
        json_mode: bool = False,
        model: str | None = None,
    ) -> str:
        self.calls.append(
            {
                "system": system,
                "user": user,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
                "model": model,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.replies:
            raise AssertionError("FakeLLM ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def estimation(
    confidence: int,
    question: str | None = None,
    understanding: str = "You want a blog post.",
    missing: list[str] | None = None,
) -> str:
    """Backend JSON for one estimation."""
    if missing is None:
        missing = [] if confidence >= 85 else ["purpose"]
    return json.dumps(
        {
            "understanding": understanding,
            "confidence": confidence,
            "missing_parameters": missing,
            "clarification_question": question,
            "ready_for_confirmation": confidence >= 85,
        }
    )


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database for each test."""
    return MockSupabaseClient()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def reply():
    """Factory for estimator JSON replies."""
    return estimation


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="http://supabase.test",
        supabase_key="test-key",
        openai_api_key="test-key",
        max_clarification_rounds=6,
        context_max_chars=4000,
        chat_interface_limit=5,
    )


@pytest.fixture
def transcripts(mock_db) -> TranscriptStore:
    return TranscriptStore(mock_db)


@pytest.fixture
def repository(mock_db) -> TemplateRepository:
    return TemplateRepository(mock_db)


@pytest.fixture
def workflow(mock_db, llm, settings, transcripts, repository) -> PromptWorkflow:
    return PromptWorkflow(transcripts, repository, PromptOptimizer(llm), llm, settings)


@pytest.fixture
def controller(mock_db, llm, settings, transcripts, workflow) -> ClarificationController:
    return ClarificationController(
        transcripts,
        ConfidenceEstimator(llm, transcripts),
        QuotaGate(mock_db, settings.chat_interface_limit),
        workflow,
        settings,
    )


@pytest.fixture
def sample_template(repository):
    return repository.create_template(
        template_text="Write a {style} blog post about {topic} for {target_audience}. Keep it {length}.",
        category="Business & Marketing",
        subcategory="Content Marketing",
        tags=["blog", "marketing"],
    )


@pytest.fixture
def app(mock_db, transcripts, repository, workflow, controller):
    """FastAPI test app with mocked dependencies."""
    from prelix.core.controller import get_controller
    from prelix.core.selector import get_template_selector
    from prelix.core.templates import get_template_repository
    from prelix.core.transcript import get_transcript_store
    from prelix.core.workflow import get_workflow
    from prelix.db.client import get_supabase_client
    from prelix.main import app as _app

    _app.dependency_overrides[get_supabase_client] = lambda: mock_db
    _app.dependency_overrides[get_transcript_store] = lambda: transcripts
    _app.dependency_overrides[get_template_repository] = lambda: repository
    _app.dependency_overrides[get_template_selector] = lambda: TemplateSelector(repository)
    _app.dependency_overrides[get_workflow] = lambda: workflow
    _app.dependency_overrides[get_controller] = lambda: controller

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client authenticated as USER_ID."""
    return TestClient(app, headers={"Authorization": "Bearer test-token"})
