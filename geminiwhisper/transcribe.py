"""Remote speech-to-text through the Gemini generateContent endpoint."""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

import httpx

from geminiwhisper.config import DEFAULT_BASE_URL
from geminiwhisper.errors import (
    InvalidRequest,
    MalformedResponse,
    QuotaExceeded,
    RetriesExhausted,
    TranscriptionError,
    TransientRemoteFailure,
)
from geminiwhisper.modes import NO_SPEECH_SENTINEL

if TYPE_CHECKING:
    from geminiwhisper.ratelimit import RateLimiter
    from geminiwhisper.types import (
        ErrorResponse,
        GenerateContentRequest,
        GenerateContentResponse,
        ListModelsResponse,
    )

logger = logging.getLogger(__name__)

StatusSink = Callable[[str], None]

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
SAFETY_THRESHOLD = "BLOCK_NONE"
TRANSIENT_STATUS_CODES = frozenset({500, 502, 503, 504})
QUOTA_STATUS_CODE = 429
DEFAULT_MAX_RETRIES = 3
MODELS_PAGE_SIZE = 1000
GENERATE_METHOD = "generateContent"


class RetryDecision(str, Enum):
    RETRY = "retry"
    FAIL = "fail"


@dataclass
class TranscriptionResult:
    """Outcome of a successful call: real text, or the no-speech marker."""

    text: str
    no_speech: bool = False
    attempts: int = 1


@dataclass(frozen=True)
class GeminiModel:
    id: str
    display_name: str


def classify(error: Exception) -> RetryDecision:
    """Decide whether a failed attempt should be retried."""
    if isinstance(error, TranscriptionError):
        return RetryDecision.RETRY if error.retryable else RetryDecision.FAIL
    if isinstance(error, httpx.TransportError):
        return RetryDecision.RETRY
    return RetryDecision.FAIL


def error_from_status(status_code: int, message: str) -> TranscriptionError:
    """Map an HTTP error status to the matching transcription error."""
    if status_code == QUOTA_STATUS_CODE:
        return QuotaExceeded(message, status_code=status_code)
    if status_code in TRANSIENT_STATUS_CODES:
        return TransientRemoteFailure(message, kind="server_unavailable", status_code=status_code)
    if 400 <= status_code < 500:
        return InvalidRequest(message, status_code=status_code)
    return TransientRemoteFailure(message, kind="server_error", status_code=status_code)


def build_request(audio_bytes: bytes, mime_type: str, prompt: str) -> "GenerateContentRequest":
    return {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {"text": prompt},
                    {
                        "inline_data": {
                            "mime_type": mime_type,
                            "data": base64.b64encode(audio_bytes).decode("ascii"),
                        }
                    },
                ],
            }
        ],
        "safetySettings": [
            {"category": category, "threshold": SAFETY_THRESHOLD}
            for category in SAFETY_CATEGORIES
        ],
    }


def extract_text(payload: "GenerateContentResponse") -> str:
    """Join the text parts of the first candidate with single spaces."""
    candidates = payload.get("candidates") or []
    if not candidates:
        reason = (payload.get("promptFeedback") or {}).get("blockReason")
        detail = f" (blocked: {reason})" if reason else ""
        raise MalformedResponse(f"No transcription received{detail}")

    parts = (candidates[0].get("content") or {}).get("parts") or []
    texts = [part["text"] for part in parts if isinstance(part.get("text"), str)]
    if not texts:
        finish = candidates[0].get("finishReason")
        detail = f" (finish reason: {finish})" if finish else ""
        raise MalformedResponse(f"No transcription received{detail}")
    return " ".join(texts)


class GeminiTranscriber:
    """
    Transcribes audio with a Gemini model, retrying transient failures.

    Quota rejections are never retried; they widen the limiter's request
    spacing instead.
    """

    def __init__(
        self,
        limiter: "RateLimiter",
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 60.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._limiter = limiter
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_attempts = max_retries + 1
        self._client = client
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout_s,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def transcribe(
        self,
        audio_bytes: bytes,
        mime_type: str,
        prompt: str,
        model_id: str,
        api_key: str,
        on_status: StatusSink | None = None,
    ) -> TranscriptionResult:
        """
        Transcribe audio, retrying transient failures with exponential backoff.

        Args:
            audio_bytes: Encoded audio file contents.
            mime_type: MIME type of ``audio_bytes``.
            prompt: Instruction text sent alongside the audio.
            model_id: Gemini model name.
            api_key: Credential for the endpoint.
            on_status: Receives progress messages for every attempt and wait.

        Returns:
            The transcript, or a result flagged ``no_speech``.

        Raises:
            InvalidRequest: Missing credential or a rejected request.
            QuotaExceeded: The endpoint refused the call for quota reasons.
            MalformedResponse: The response carried no transcript.
            RetriesExhausted: Every attempt failed transiently.
        """
        if not api_key:
            raise InvalidRequest("API key missing. Please set it in settings.", kind="missing_api_key")

        body = build_request(audio_bytes, mime_type, prompt)
        last_error: TranscriptionError | None = None

        for attempt in range(self._max_attempts):
            self._report(on_status, f"Transcribing (attempt {attempt + 1}/{self._max_attempts})...")
            try:
                text = self._send(body, model_id, api_key)
            except TranscriptionError as e:
                if isinstance(e, QuotaExceeded):
                    self._limiter.on_quota_exceeded()
                if classify(e) is RetryDecision.FAIL:
                    logger.error("Transcription failed (%s): %s", e.kind, e.message)
                    raise
                last_error = e
                logger.warning(
                    "Transient transcription failure on attempt %d/%d: %s",
                    attempt + 1,
                    self._max_attempts,
                    e.message,
                )
                if attempt + 1 < self._max_attempts:
                    delay = self._limiter.compute_backoff(attempt)
                    self._report(
                        on_status,
                        f"Service unavailable, retrying in {delay:g}s "
                        f"(attempt {attempt + 2}/{self._max_attempts})...",
                    )
                    self._sleep(delay)
                continue

            if text.strip() == NO_SPEECH_SENTINEL:
                logger.info("Model reported no speech")
                return TranscriptionResult(text="", no_speech=True, attempts=attempt + 1)
            return TranscriptionResult(text=text, attempts=attempt + 1)

        if last_error is None:
            raise RetriesExhausted("Transcription failed: no attempts were made")
        raise RetriesExhausted(
            f"Transcription failed after {self._max_attempts} attempts: {last_error.message}",
            status_code=last_error.status_code,
        ) from last_error

    def list_models(self, api_key: str) -> list[GeminiModel]:
        """
        Models the key can use for transcription, sorted by id.

        A single unretried pass over every page of ``GET /models``; models
        without ``generateContent`` support are skipped.

        Raises:
            InvalidRequest: Missing or rejected credential.
            TranscriptionError: Any other failed page request.
        """
        if not api_key:
            raise InvalidRequest("API key missing. Please set it in settings.", kind="missing_api_key")

        models: dict[str, GeminiModel] = {}
        page_token: str | None = None
        while True:
            params = {"pageSize": str(MODELS_PAGE_SIZE)}
            if page_token:
                params["pageToken"] = page_token
            payload = self._get_json(f"{self._base_url}/models", api_key, params)
            for info in payload.get("models") or []:
                if GENERATE_METHOD not in (info.get("supportedGenerationMethods") or []):
                    continue
                model_id = info.get("name", "").removeprefix("models/")
                if model_id:
                    models[model_id] = GeminiModel(model_id, info.get("displayName") or model_id)
            page_token = payload.get("nextPageToken")
            if not page_token:
                break

        logger.info("Fetched %d transcription-capable models", len(models))
        return [models[model_id] for model_id in sorted(models)]

    def _get_json(self, url: str, api_key: str, params: dict[str, str]) -> "ListModelsResponse":
        try:
            response = self._get_client().get(
                url,
                params=params,
                headers={"x-goog-api-key": api_key},
                timeout=self._timeout_s,
            )
        except httpx.TimeoutException as e:
            raise TransientRemoteFailure(f"Request timed out: {e}", kind="timeout") from e
        except httpx.TransportError as e:
            raise TransientRemoteFailure(f"Network error: {e}", kind="network") from e

        if response.status_code >= 400:
            raise error_from_status(response.status_code, self._error_message(response))
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse(f"Response is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedResponse("Response is not a JSON object")
        return payload

    def _send(self, body: "GenerateContentRequest", model_id: str, api_key: str) -> str:
        url = f"{self._base_url}/models/{model_id}:generateContent"
        try:
            response = self._get_client().post(
                url,
                json=body,
                headers={"x-goog-api-key": api_key},
                timeout=self._timeout_s,
            )
        except httpx.TimeoutException as e:
            raise TransientRemoteFailure(f"Request timed out: {e}", kind="timeout") from e
        except httpx.TransportError as e:
            raise TransientRemoteFailure(f"Network error: {e}", kind="network") from e

        if response.status_code >= 400:
            raise error_from_status(response.status_code, self._error_message(response))

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse(f"Response is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedResponse("Response is not a JSON object")
        return extract_text(payload)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload: "ErrorResponse" = response.json()
            message = (payload.get("error") or {}).get("message")
        except (ValueError, AttributeError):
            message = None
        return message or f"HTTP {response.status_code}: {response.reason_phrase}"

    @staticmethod
    def _report(on_status: StatusSink | None, message: str) -> None:
        if on_status is not None:
            on_status(message)
