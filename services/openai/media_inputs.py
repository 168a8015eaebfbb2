"""Utilities to build multimodal Chat Completions messages."""

from typing import Any, Dict, List

from models.image_models import EncodedPayload


def build_image_part(payload: EncodedPayload, detail: str = "high") -> Dict[str, Any]:
    """Wrap an encoded image as a data-URL content part for vision input."""
    if not payload.data:
        raise ValueError("Encoded image payload is empty.")
    return {"type": "image_url", "image_url": {"url": payload.data_url, "detail": detail}}


def build_messages(
    system_prompt: str,
    user_prompt: str,
    payload: EncodedPayload,
    *,
    detail: str = "high",
) -> List[Dict[str, Any]]:
    """Build the message list with the instruction first and the image last."""
    return [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": user_prompt},
                build_image_part(payload, detail),
            ],
        },
    ]
