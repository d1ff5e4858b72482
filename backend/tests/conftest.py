"""
DGT Coach Backend: Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixtures:
    ├── fake_llm:            LLMService double that records prompts, no network
    ├── sample_image_bytes:  smallest valid JPEG
    ├── sample_image_b64:    the same, base64-encoded as the app sends it
    ├── test_client:         HTTPX AsyncClient against create_app(fake_llm)
    └── legacy_client:       same, with the legacy tag contract
"""

import base64
import os

# Override settings for testing BEFORE any dgt_coach imports
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["GEMINI_MODEL"] = "gemini-test-model"
os.environ["RESPONSE_CONTRACT"] = "json"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from dgt_coach.config import ResponseContract
from dgt_coach.services.llm_base import LLMService, UpstreamPrompt


class FakeLLMService(LLMService):
    """
    Stands in for GeminiService.

    Set `reply` for a fixed answer, `reply_fn` (async, receives the prompt)
    for a computed one, or `error` to raise instead of answering.
    """

    def __init__(self):
        self.model_name = "fake-model"
        self.reply = "[]"
        self.reply_fn = None
        self.error = None
        self.configured = True
        self.prompts = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: UpstreamPrompt) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.reply_fn is not None:
            return await self.reply_fn(prompt)
        return self.reply

    async def health_check(self) -> bool:
        return self.configured


@pytest.fixture
def fake_llm():
    return FakeLLMService()


@pytest.fixture
def sample_image_bytes():
    """
    Minimal JPEG: SOI marker + JFIF header + EOI marker.

    Not a real photograph, but the relay never looks inside the image.
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest.fixture
def sample_image_b64(sample_image_bytes):
    return base64.b64encode(sample_image_bytes).decode("ascii")


@pytest.fixture
def sample_analysis():
    """A well-formed image-mode reply, as the JSON contract asks for."""
    return [
        {
            "knowledgePoint": "优先通行权",
            "translation": "在没有信号的交叉路口，谁有优先权？",
            "correctAnswer": "B",
            "explanation": "根据《交通总条例》第57条，右侧来车优先。",
            "relatedPoints": "环岛内车辆优先。",
            "keywords": "prioridad: 优先权; intersección: 交叉路口",
        }
    ]


@pytest_asyncio.fixture
async def test_client(fake_llm):
    """
    HTTPX AsyncClient wired straight to a fresh app instance.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from dgt_coach.main import create_app
    app = create_app(llm_service=fake_llm)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def legacy_client(fake_llm):
    from dgt_coach.main import create_app
    app = create_app(llm_service=fake_llm, contract=ResponseContract.LEGACY_TAGS)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
