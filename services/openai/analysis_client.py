"""Remote terrain analysis over OpenAI's Chat Completions API."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Callable, Optional

import openai
from openai import AsyncOpenAI

from models.analysis_models import AnalysisRequest, RawModelReply
from models.errors import (
    AuthError,
    MalformedEnvelope,
    RateLimited,
    ServerError,
    Timeout,
    TransportError,
)

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[str], AsyncOpenAI]


def _retry_after_seconds(response) -> Optional[float]:
    """Return the Retry-After hint of a rate-limited response, in seconds."""
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    retry_ms = headers.get("retry-after-ms")
    if retry_ms:
        try:
            return float(retry_ms) / 1000.0
        except ValueError:
            pass
    retry = headers.get("retry-after")
    if retry:
        try:
            return float(retry)
        except ValueError:
            # HTTP-date form is not worth resolving for a display hint
            return None
    return None


class RemoteAnalysisClient:
    """Send one analysis request per call and translate transport outcomes.

    The API key is borrowed per call: a dedicated `AsyncOpenAI` client is built
    for the request and closed as soon as the reply (or failure) is in. The SDK's
    own retries are disabled; retrying is left to an explicit user action.
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        *,
        base_url: Optional[str] = None,
        default_timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url
        self.default_timeout = default_timeout
        self._client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            max_retries=0,
            timeout=self.default_timeout,
        )

    async def send(
        self,
        request: AnalysisRequest,
        api_key: str,
        timeout: Optional[float] = None,
    ) -> RawModelReply:
        """Perform exactly one remote call and return the decoded outer envelope.

        Args:
            request: Request built by the prompt builder.
            api_key: OpenAI API key, used for this call only.
            timeout: Hard deadline in seconds; defaults to `default_timeout`.

        Raises:
            AuthError: If the key is blank or rejected (HTTP 401/403).
            RateLimited: On HTTP 429.
            Timeout: If the deadline is exceeded.
            TransportError: On connection-level failures.
            ServerError: On 5xx or any other unexpected status.
            MalformedEnvelope: If a successful response body is not a JSON object.
        """
        if not api_key or not api_key.strip():
            raise AuthError("An OpenAI API key is required to run the analysis.")

        deadline = timeout if timeout is not None else self.default_timeout
        start_time = time.monotonic()
        try:
            async with self._client_factory(api_key.strip()) as client:
                raw = await asyncio.wait_for(
                    client.chat.completions.with_raw_response.create(**request.to_payload()),
                    timeout=deadline,
                )
                http_response = raw.http_response
                status_code = http_response.status_code
                body_text = http_response.text
                request_id = http_response.headers.get("x-request-id")
        except asyncio.TimeoutError as exc:
            LOGGER.warning("Analysis request exceeded the %.1fs deadline", deadline)
            raise Timeout(f"The analysis service did not answer within {deadline:g} seconds.") from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            LOGGER.warning("Analysis request rejected credentials (HTTP %s)", exc.status_code)
            raise AuthError("The OpenAI API key was rejected. Check the key and try again.") from exc
        except openai.RateLimitError as exc:
            retry_after = _retry_after_seconds(exc.response)
            LOGGER.warning("Analysis request rate limited (retry after %s)", retry_after)
            raise RateLimited("The analysis service is rate limiting requests.", retry_after=retry_after) from exc
        except openai.APITimeoutError as exc:
            LOGGER.warning("Analysis request timed out in transport: %s", exc)
            raise Timeout("The analysis service request timed out.") from exc
        except openai.APIConnectionError as exc:
            LOGGER.warning("Analysis request could not connect: %s", exc)
            raise TransportError("Could not reach the analysis service. Check the network connection.") from exc
        except openai.APIStatusError as exc:
            LOGGER.error("Analysis request failed with HTTP %s: %s", exc.status_code, exc)
            if exc.status_code >= 500:
                message = f"The analysis service failed (HTTP {exc.status_code})."
            else:
                message = f"The analysis service rejected the request (HTTP {exc.status_code})."
            raise ServerError(message, status_code=exc.status_code) from exc
        except openai.OpenAIError as exc:
            LOGGER.error("Error during OpenAI Chat Completions call: %s", exc)
            raise TransportError(f"The analysis request failed: {exc}") from exc

        latency = time.monotonic() - start_time
        try:
            body = json.loads(body_text)
        except ValueError as exc:
            LOGGER.error("Analysis response body is not JSON (request_id=%s)", request_id)
            raise MalformedEnvelope("The analysis service returned a response that is not JSON.") from exc
        if not isinstance(body, dict):
            raise MalformedEnvelope("The analysis service returned JSON that is not an object.")

        LOGGER.info(
            "Analysis response received: model=%s status=%s request_id=%s latency=%.2fs",
            body.get("model"),
            status_code,
            request_id,
            latency,
        )
        return RawModelReply(body=body, status_code=status_code, request_id=request_id, latency=latency)
