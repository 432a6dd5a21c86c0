import pytest
from fastapi.testclient import TestClient

from emailgen.api.app import create_app
from emailgen.api.deps import build_services
from emailgen.config import Settings
from emailgen.store import MemoryStore
from fakes import FakeTextModel, FakeVisionModel, make_pdf


@pytest.fixture
def pdf_bytes():
    return make_pdf(2)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings():
    return Settings(
        gemini_api_key="gemini-key",
        anthropic_api_key="anthropic-key",
        sfmc_client_id="client",
        sfmc_client_secret="secret",
        sfmc_account_id="account",
        sfmc_auth_url="https://auth.example.com",
        litmus_api_key="litmus-key",
    )


@pytest.fixture
def anthropic_model():
    return FakeTextModel("anthropic")


@pytest.fixture
def gemini_model():
    return FakeTextModel("gemini")


@pytest.fixture
def modify_model():
    return FakeTextModel("anthropic")


@pytest.fixture
def vision_model():
    return FakeVisionModel(reply="```html\n<table><tr><td>Hello</td></tr></table>\n```")


@pytest.fixture
def services(settings, store, vision_model, anthropic_model, gemini_model, modify_model):
    return build_services(
        settings,
        store=store,
        vision=vision_model,
        providers={"anthropic": anthropic_model, "gemini": gemini_model},
        modify_model=modify_model,
    )


@pytest.fixture
def client(settings, services):
    return TestClient(create_app(settings, services))


@pytest.fixture
def auth():
    return {"X-User-Id": "user-1"}
