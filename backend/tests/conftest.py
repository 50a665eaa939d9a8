"""Shared fixtures for unit and integration tests."""

from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from backend.src.api.main import create_app
from backend.src.services.config import AppConfig
from backend.tests.fakes import VALID_TOKEN, FakeSupabase


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        supabase_url="https://example.supabase.co/",
        supabase_service_role_key="service-role-key",
        public_url="https://notes.example.com",
    )


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def app(app_config: AppConfig, fake_supabase: FakeSupabase):
    return create_app(app_config, supabase_client=fake_supabase)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {VALID_TOKEN}"}
