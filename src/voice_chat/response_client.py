"""HTTP client for the remote response-generation service."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

FALLBACK_MESSAGE = "Could not generate a response."
GENERATE_RESPONSE_PATH = "/api/generate-response"


@dataclass(frozen=True, slots=True)
class ResponseFailure:
    """Why a response could not be generated."""

    reason: str
    status_code: int | None = None


@dataclass(frozen=True, slots=True)
class GeneratedReply:
    """Reply text to display; carries the fallback text when ``failure`` is set."""

    text: str
    failure: ResponseFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class ResponseClient:
    """Single-shot request/response against ``POST {base_url}/api/generate-response``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + GENERATE_RESPONSE_PATH
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._logger = logger or logging.getLogger("voice_chat.response_client")

    @property
    def url(self) -> str:
        return self._url

    async def generate_response(self, transcript: str, session_id: str) -> GeneratedReply:
        """Send one transcript; never raises for transport or payload problems."""
        self._logger.info("response_requested", extra={"session_id": session_id, "chars": len(transcript)})
        try:
            response = await self._client.post(self._url, json={"transcript": transcript, "sessionId": session_id})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            return self._fail(f"HTTP {exc.response.status_code}", session_id, status_code=exc.response.status_code)
        except httpx.HTTPError as exc:
            return self._fail(f"{type(exc).__name__}: {exc}", session_id)
        except ValueError as exc:
            return self._fail(f"Invalid JSON body: {exc}", session_id)

        text = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            return self._fail("Response body has no 'response' string", session_id)

        self._logger.info("response_received", extra={"session_id": session_id, "chars": len(text)})
        return GeneratedReply(text=text)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _fail(self, reason: str, session_id: str, *, status_code: int | None = None) -> GeneratedReply:
        self._logger.warning(
            "response_failed",
            extra={"session_id": session_id, "reason": reason, "status_code": status_code},
        )
        return GeneratedReply(text=FALLBACK_MESSAGE, failure=ResponseFailure(reason=reason, status_code=status_code))
