"""Tests for analysis request construction."""

from models.image_models import EncodedPayload
from services.openai.prompt_builder import PromptBuilder
from services.openai.prompts import PROMPT_VERSION, build_system_prompt


def _payload():
    return EncodedPayload(data="aGVsbG8=", media_type="image/jpeg", width=10, height=8)


def test_build_produces_deterministic_json_request():
    request = PromptBuilder(model="gpt-4o-mini", max_tokens=700).build(_payload())
    payload = request.to_payload()

    assert payload["model"] == "gpt-4o-mini"
    assert payload["max_tokens"] == 700
    assert payload["temperature"] == 0.0
    assert payload["response_format"] == {"type": "json_object"}
    assert request.prompt_version == PROMPT_VERSION


def test_image_is_sent_as_data_url_after_the_instruction():
    request = PromptBuilder(detail="low").build(_payload())
    system, user = request.messages

    assert system["role"] == "system"
    assert system["content"] == build_system_prompt()
    text_part, image_part = user["content"]
    assert text_part["type"] == "text"
    assert image_part == {
        "type": "image_url",
        "image_url": {"url": "data:image/jpeg;base64,aGVsbG8=", "detail": "low"},
    }


def test_system_prompt_describes_every_assessment_field():
    prompt = build_system_prompt()
    for field_name in (
        "overall_risk",
        "confidence",
        "snow_texture",
        "terrain_features",
        "predicted_movement_pattern",
        "slope_angle_estimate_degrees",
    ):
        assert field_name in prompt


def test_each_build_returns_a_fresh_request():
    builder = PromptBuilder()
    first = builder.build(_payload())
    second = builder.build(_payload())
    assert first is not second
    assert first.messages is not second.messages
