"""Utilities for pulling model content and JSON objects out of Chat Completions replies."""

import json
from typing import Any, Dict, Optional

from models.errors import MalformedEnvelope, SchemaViolation


def extract_message_content(body: Dict[str, Any]) -> str:
    """Return the generated text of the first choice in a Chat Completions envelope.

    Raises:
        MalformedEnvelope: If the envelope lacks the choices/message structure.
        SchemaViolation: If the model refused or produced no text.
    """
    error = body.get("error")
    if error and not body.get("choices"):
        detail = error.get("message") if isinstance(error, dict) else error
        raise MalformedEnvelope(f"The analysis service returned an error payload: {detail}")

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise MalformedEnvelope("The analysis response did not contain any choices.")

    message = choices[0].get("message")
    if not isinstance(message, dict):
        raise MalformedEnvelope("The analysis response choice did not contain a message.")

    refusal = message.get("refusal")
    if refusal:
        raise SchemaViolation(f"The model declined to analyse the image: {refusal}")

    content = message.get("content")
    if isinstance(content, list):
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") in ("text", "output_text")
        )
    if not isinstance(content, str) or not content.strip():
        if choices[0].get("finish_reason") == "length":
            raise SchemaViolation("The model reply was cut off before any content was produced.")
        raise SchemaViolation("The model reply was empty.")
    return content


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object found in *text*, or None.

    The whole text is tried first; otherwise every `{` is tried as the start of a
    brace-balanced candidate, which tolerates code fences and surrounding prose.
    """
    if not text or not text.strip():
        return None

    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    for index, char in enumerate(stripped):
        if char != "{":
            continue
        candidate = _balanced_object(stripped, index)
        if candidate is not None:
            return candidate
    return None


def _balanced_object(text: str, start: int) -> Optional[Dict[str, Any]]:
    depth = 0
    in_string = False
    escape = False
    for index in range(start, len(text)):
        char = text[index]
        if escape:
            escape = False
            continue
        if char == "\\":
            if in_string:
                escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start : index + 1])
                except ValueError:
                    return None
                return parsed if isinstance(parsed, dict) else None
    return None
