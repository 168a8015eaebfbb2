"""Shared fixtures for the avalanche analysis tests."""

import asyncio
import copy
import io
import json

import httpx
import pytest
from openai import AsyncOpenAI
from PIL import Image

from models.analysis_models import RawModelReply
from services.analysis.session import AnalysisSession
from services.image_codec import ImageCodec
from services.openai.analysis_client import RemoteAnalysisClient
from services.openai.prompt_builder import PromptBuilder
from services.openai.response_parser import ResponseParser

API_BASE_URL = "https://api.test/v1"

VALID_ASSESSMENT = {
    "overall_risk": "Considerable",
    "confidence": 0.72,
    "snow_texture": "Blocky",
    "terrain_features": ["convex rollover", "Cornice", "cornice ", "gully"],
    "predicted_movement_pattern": "Wide slab release below the cornice running into the gully.",
    "slope_angle_estimate_degrees": 38,
    "avalanche_present": False,
    "avalanche_type": "none",
}


def _image_bytes(size=(64, 48), fmt="JPEG", mode="RGB", color=(200, 210, 230)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def _completion_body(content, **extra) -> dict:
    if not isinstance(content, str):
        content = json.dumps(content)
    body = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1718000000,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 812, "completion_tokens": 143, "total_tokens": 955},
    }
    body.update(extra)
    return body


class StubRemoteClient:
    """Replay scripted outcomes instead of calling the network.

    Each outcome is a completion body dict, a `RawModelReply`, an exception to raise,
    or an async callable `(request, api_key, timeout)` returning one of those.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.api_keys = []

    async def send(self, request, api_key, timeout=None):
        self.requests.append(request)
        self.api_keys.append(api_key)
        outcome = self.outcomes.pop(0)
        if callable(outcome):
            outcome = await outcome(request, api_key, timeout)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, RawModelReply):
            return outcome
        return RawModelReply(body=outcome, latency=0.01)


@pytest.fixture
def make_image():
    return _image_bytes


@pytest.fixture
def image_bytes():
    return _image_bytes()


@pytest.fixture
def completion_body():
    return _completion_body


@pytest.fixture
def valid_assessment():
    return copy.deepcopy(VALID_ASSESSMENT)


@pytest.fixture
def stub_client():
    return StubRemoteClient


@pytest.fixture
def mock_remote_client():
    """Build a RemoteAnalysisClient whose AsyncOpenAI clients talk to an httpx mock transport."""

    def build(handler, **kwargs):
        def factory(api_key):
            return AsyncOpenAI(
                api_key=api_key,
                base_url=API_BASE_URL,
                max_retries=0,
                http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            )

        return RemoteAnalysisClient(factory, **kwargs)

    return build


@pytest.fixture
def make_session():
    def build(client, timeout=None):
        return AnalysisSession(
            codec=ImageCodec(max_dimension=256),
            prompt_builder=PromptBuilder(),
            client=client,
            parser=ResponseParser(),
            timeout=timeout,
        )

    return build


@pytest.fixture
def wait_for_phase():
    """Poll a session until it reaches the named phase."""

    async def wait(session, name, attempts=200):
        for _ in range(attempts):
            if session.phase.name == name:
                return session.phase
            await asyncio.sleep(0.01)
        raise AssertionError(f"session never reached {name}, stuck at {session.phase.name}")

    return wait
