from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AnalysisRequest:
    """Chat Completions request for one analysis. Built fresh per session, never reused."""

    model: str
    messages: List[Dict[str, Any]] = field(repr=False)
    max_tokens: int
    prompt_version: str
    temperature: float = 0.0
    response_format: Dict[str, Any] = field(default_factory=lambda: {"type": "json_object"})

    def to_payload(self) -> Dict[str, Any]:
        """Return keyword arguments for `chat.completions.create`."""
        return {
            "model": self.model,
            "messages": self.messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "response_format": self.response_format,
        }


@dataclass(frozen=True)
class RawModelReply:
    """Outer JSON envelope returned by the remote service, before content extraction.

    Attributes:
        body: Decoded top-level JSON object of the response.
        status_code: HTTP status of the response.
        request_id: Provider request id, when the response carried one.
        latency: Seconds spent waiting for the response.
    """

    body: Dict[str, Any] = field(repr=False)
    status_code: int = 200
    request_id: Optional[str] = None
    latency: float = 0.0

    @property
    def model(self) -> Optional[str]:
        return self.body.get("model")

    def usage(self) -> Dict[str, Optional[int]]:
        """Return token usage information from the envelope, if present."""
        usage = self.body.get("usage")
        if not isinstance(usage, dict):
            return {"input_tokens": None, "output_tokens": None}
        return {
            "input_tokens": usage.get("prompt_tokens"),
            "output_tokens": usage.get("completion_tokens"),
        }
