"""Pytest configuration and shared fixtures. Gemini is always replaced by a fake model."""

import os
import time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set config before app imports so settings pick it up
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("GEMINI_RETRY_DELAY_SECONDS", "0")

from nutrition_ai.main import app
from nutrition_ai.services.vision import VisionService
from nutrition_ai.settings import settings


class FakeResponse:
    def __init__(self, text: str):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel; replies are returned (or raised) in order."""

    def __init__(self, replies, delay: float = 0.0):
        self.replies = list(replies)
        self.delay = delay
        self.calls = []

    def generate_content(self, contents):
        self.calls.append(contents)
        if self.delay:
            time.sleep(self.delay)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


@pytest.fixture(autouse=True)
def clean_service_state(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(settings, "gemini_retry_delay_seconds", 0.0)
    VisionService.clear_cache()
    yield
    VisionService.clear_cache()


@pytest.fixture
def fake_model(monkeypatch):
    """Install a FakeModel answering with the given replies; returns the model."""

    def install(*replies, delay: float = 0.0) -> FakeModel:
        model = FakeModel(replies, delay=delay)
        monkeypatch.setattr(VisionService, "_get_model", staticmethod(lambda model_name: model))
        return model

    return install


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
