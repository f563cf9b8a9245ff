"""Pytest configuration and fixtures."""

import os

# Set before the application (and its cached settings) is imported
os.environ.setdefault("ZETO_ENV", "test")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("CENTRAL_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from tests.fakes.fake_db import (
    FakeConversationRepository,
    FakeDocumentRepository,
    FakeObjectStore,
)
from tests.fakes.fake_gateway import FakeGateway
from tests.fakes.fake_settings import make_settings
from zeto.api import deps
from zeto.core.config import Settings, get_settings
from zeto.main import app


@pytest.fixture(autouse=True)
def clear_overrides():
    """Reset dependency overrides and cached settings between tests."""
    get_settings.cache_clear()
    yield
    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def documents() -> FakeDocumentRepository:
    return FakeDocumentRepository()


@pytest.fixture
def conversations() -> FakeConversationRepository:
    return FakeConversationRepository()


@pytest.fixture
def storage() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def client(settings, gateway, documents, conversations, storage) -> TestClient:
    """TestClient with every app-scoped collaborator replaced by a fake."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[deps.get_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_optional_document_repository] = lambda: documents
    app.dependency_overrides[deps.get_document_repository] = lambda: documents
    app.dependency_overrides[deps.get_optional_conversation_repository] = lambda: conversations
    app.dependency_overrides[deps.get_conversation_repository] = lambda: conversations
    app.dependency_overrides[deps.get_object_store] = lambda: storage
    return TestClient(app, raise_server_exceptions=False)
