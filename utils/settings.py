"""Environment-driven configuration for the analysis engine.

Values are read from the process environment, optionally seeded from a `.env`
file. The OpenAI API key is deliberately not part of these settings: it is
supplied per analysis by the caller.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4o-mini"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class AnalyzerSettings:
    """Tunable limits and model configuration.

    Attributes:
        openai_model: Vision-capable chat model used for the analysis.
        openai_base_url: Optional override for the OpenAI API base URL.
        max_tokens: Completion token budget per analysis.
        request_timeout: Hard deadline in seconds for the remote call.
        image_detail: Vision detail hint sent with the image ("low", "high" or "auto").
        max_image_dimension: Longest side, in pixels, of the transported image.
        jpeg_quality: JPEG quality used for the transport encoding.
        max_transport_bytes: Upper bound on the base64 payload size.
        log_level: Root logging level configured by the application.
        session_idle_ttl: Seconds a finished or idle session is kept before eviction.
    """

    openai_model: str = DEFAULT_MODEL
    openai_base_url: Optional[str] = None
    max_tokens: int = 600
    request_timeout: float = 60.0
    image_detail: str = "high"
    max_image_dimension: int = 2048
    jpeg_quality: int = 90
    max_transport_bytes: int = 8 * 1024 * 1024
    log_level: str = "INFO"
    session_idle_ttl: float = 3600.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AnalyzerSettings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if env is None else env
        detail = (env.get("ANALYSIS_IMAGE_DETAIL") or "high").strip().lower()
        if detail not in ("low", "high", "auto"):
            raise ValueError(f"ANALYSIS_IMAGE_DETAIL must be low, high or auto, got {detail!r}")
        quality = _env_int(env, "IMAGE_JPEG_QUALITY", 90)
        if quality > 100:
            raise ValueError(f"IMAGE_JPEG_QUALITY must be at most 100, got {quality}")
        return cls(
            openai_model=(env.get("OPENAI_MODEL") or DEFAULT_MODEL).strip(),
            openai_base_url=(env.get("OPENAI_BASE_URL") or "").strip() or None,
            max_tokens=_env_int(env, "ANALYSIS_MAX_TOKENS", 600),
            request_timeout=_env_float(env, "ANALYSIS_TIMEOUT_SECONDS", 60.0),
            image_detail=detail,
            max_image_dimension=_env_int(env, "IMAGE_MAX_DIMENSION", 2048),
            jpeg_quality=quality,
            max_transport_bytes=_env_int(env, "IMAGE_MAX_TRANSPORT_BYTES", 8 * 1024 * 1024),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
            session_idle_ttl=_env_float(env, "SESSION_IDLE_TTL_SECONDS", 3600.0),
        )


@lru_cache(maxsize=1)
def get_settings() -> AnalyzerSettings:
    """Return process-wide settings, loading `.env` on first use."""
    load_dotenv()  # Load environment variables from .env file if present
    return AnalyzerSettings.from_env()
