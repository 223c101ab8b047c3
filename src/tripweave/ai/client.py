"""Gemini client for tripweave.

This module is the only place that imports google-generativeai. Pipelines
receive an :class:`AIClient` (or None) by injection and never talk to the SDK
directly.

Behaviour:
- One ``generate_content`` call per request. No retries, no streaming.
- Every call carries a deadline (``ai.timeout_seconds``).
- SDK errors are mapped onto the :class:`AIClientError` hierarchy.
- Prompts, responses and keys are never logged.

Example:
    >>> from tripweave.ai.client import get_client
    >>> client = get_client()
    >>> if client.is_available():
    ...     response = client.generate("Describe Lisbon in one line.")
    ...     print(response.text)
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Literal

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import GenerationConfig, HarmBlockThreshold, HarmCategory
from pydantic import BaseModel, Field

from tripweave.config import APIKeyManager, AppConfig, load_config


# =============================================================================
# Secure Logging Filter
# =============================================================================


class RedactingFilter(logging.Filter):
    """Mask anything that looks like a credential in log records.

    Example:
        >>> logger.addFilter(RedactingFilter())
        >>> logger.info("Using api_key=AIzaSy123456789...")
        # Output: "Using api_key=[REDACTED]"
    """

    PATTERNS = [
        re.compile(r'(api_key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r'(key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r'(token\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r"(bearer\s+)([a-zA-Z0-9_\-]{20,})", re.IGNORECASE),
        # Gemini keys start with AIza
        re.compile(r"\bAIza[a-zA-Z0-9_\-]{30,}\b"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True

    def _redact(self, text: str) -> str:
        for pattern in self.PATTERNS[:4]:
            text = pattern.sub(r"\1[REDACTED]", text)
        for pattern in self.PATTERNS[4:]:
            text = pattern.sub("[REDACTED]", text)
        return text


logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())


# =============================================================================
# Exception Hierarchy
# =============================================================================


class AIClientError(Exception):
    """Base exception for all AI client errors.

    Attributes:
        message: Human-readable error description (safe to log).
        retriable: Whether a later identical request could succeed.
        original_error: The underlying SDK exception, if any.
    """

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message


class AIUnavailableError(AIClientError):
    """AI cannot be used right now (disabled or no credential).

    Attributes:
        reason: Machine-readable cause.
    """

    def __init__(
        self,
        reason: Literal["disabled", "no_api_key", "offline"],
        message: str | None = None,
    ) -> None:
        self.reason = reason
        default_messages = {
            "disabled": "AI features are disabled in configuration",
            "no_api_key": "No Gemini API key configured",
            "offline": "Cannot reach the Gemini API",
        }
        super().__init__(message or default_messages.get(reason, f"AI unavailable: {reason}"))


class AIAuthenticationError(AIClientError):
    """API key rejected."""

    def __init__(
        self,
        message: str = "API authentication failed. Please check your API key.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AIRateLimitError(AIClientError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait before retrying.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)


class AIQuotaExceededError(AIClientError):
    """Quota or billing limit reached."""

    def __init__(
        self,
        message: str = "API quota exceeded. Check your billing and usage limits.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AIServerError(AIClientError):
    """Server-side (5xx) failure.

    Attributes:
        status_code: HTTP status, when known.
    """

    def __init__(
        self,
        message: str = "AI server error. The service may be temporarily unavailable.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.status_code = status_code


class AIBadRequestError(AIClientError):
    """The request itself was rejected as malformed."""

    def __init__(
        self,
        message: str = "Invalid request to AI service.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AITimeoutError(AIClientError):
    """The call exceeded its deadline.

    Attributes:
        timeout_seconds: The deadline that was exceeded.
    """

    def __init__(
        self,
        timeout_seconds: float,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Request timed out after {timeout_seconds} seconds"
        super().__init__(msg, retriable=True, original_error=original_error)
        self.timeout_seconds = timeout_seconds


class ModelNotAvailableError(AIClientError):
    """Configured model name does not exist for this key."""

    def __init__(
        self,
        model_name: str,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Model '{model_name}' not found. Check model name in configuration."
        super().__init__(msg, retriable=False, original_error=original_error)
        self.model_name = model_name


class ContentBlockedError(AIClientError):
    """Prompt or response blocked by safety filters."""

    def __init__(
        self,
        message: str = "Content blocked by safety filters.",
        blocked_reason: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)
        self.blocked_reason = blocked_reason


# =============================================================================
# Response Models
# =============================================================================


class AIResponse(BaseModel):
    """Text response from a single generation call."""

    text: str = Field(..., description="The generated content")
    model: str = Field(..., description="Model that generated this response")
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    latency_ms: float | None = None
    raw_response: Any = Field(None, exclude=True)

    def is_truncated(self) -> bool:
        return self.finish_reason in {"MAX_TOKENS", "LENGTH", "RECITATION"}


class StructuredAIResponse(BaseModel):
    """JSON response.

    ``parse_success`` is False when nothing JSON-like could be recovered from
    the text; ``data`` is then an empty dict.
    """

    data: dict[str, Any] | list[Any] = Field(default_factory=dict)
    raw_text: str = Field(..., description="Original text before parsing")
    model: str
    tokens_used: int | None = None
    latency_ms: float | None = None
    parse_success: bool = True
    parse_error: str | None = None


def extract_json(text: str) -> tuple[dict[str, Any] | list[Any], str | None]:
    """Recover a JSON payload from model text.

    Tries the whole text, then a fenced code block, then the outermost
    object/array span.

    Returns:
        (data, error). ``error`` is None on success, and ``data`` is ``{}``
        on failure.
    """
    text = text.strip()
    try:
        return json.loads(text), None
    except json.JSONDecodeError as e:
        first_error = e.msg

    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if fenced:
        try:
            return json.loads(fenced.group(1)), None
        except json.JSONDecodeError:
            return {}, f"JSON parse error in code block: {first_error}"

    span = re.search(r"(\{[\s\S]*\}|\[[\s\S]*\])", text)
    if span:
        try:
            return json.loads(span.group(1)), None
        except json.JSONDecodeError:
            return {}, f"JSON parse error in extracted content: {first_error}"

    return {}, f"JSON parse error: {first_error}"


# =============================================================================
# AIClient
# =============================================================================


class AIClient:
    """Thin wrapper around ``genai.GenerativeModel``.

    Construction never raises for a missing credential: the client simply
    reports ``is_available() == False`` and callers use their fallback path.
    A missing key is logged once, at warning level, when the client is built.

    Example:
        >>> client = AIClient(config)
        >>> if client.is_available():
        ...     result = client.generate_json(
        ...         "List three landmarks in Kyoto",
        ...         schema_hint='{"landmarks": ["string"]}',
        ...     )
        ...     print(result.data)
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        api_key: str | None = None,
    ) -> None:
        """Initialise the client. No network call is made here.

        Args:
            config: Application configuration. Loaded from disk/env if None.
            api_key: Explicit key, bypassing the environment and keyring lookup.
        """
        self._config = config or load_config()
        self._api_key: str | None = None
        self._is_configured = False
        self._logger = logging.getLogger(f"{__name__}.AIClient")
        if not any(isinstance(f, RedactingFilter) for f in self._logger.filters):
            self._logger.addFilter(RedactingFilter())

        if not self._config.ai.is_enabled():
            self._logger.info("AI is disabled in configuration; using fallback content")
            return

        if api_key:
            self._api_key = api_key.strip()
        else:
            secret = APIKeyManager().get_key()
            self._api_key = secret.get_secret_value() if secret else None

        if not self._api_key:
            self._logger.warning(
                "No Gemini API key configured; AI features will use fallback content"
            )
            return

        try:
            genai.configure(api_key=self._api_key)
            self._is_configured = True
            self._logger.info(f"AI client configured with model {self._config.ai.model_name}")
        except Exception as e:
            self._logger.error(f"Failed to configure AI SDK: {type(e).__name__}")

    @property
    def config(self) -> AppConfig:
        return self._config

    def is_available(self) -> bool:
        """True when AI is enabled and a key is configured. No network call."""
        return self._config.ai.is_enabled() and self._is_configured

    def _ensure_available(self) -> None:
        if not self._config.ai.is_enabled():
            raise AIUnavailableError("disabled")
        if not self._is_configured:
            raise AIUnavailableError("no_api_key")

    def _get_generation_config(self, **overrides: Any) -> GenerationConfig:
        params: dict[str, Any] = {
            "temperature": self._config.ai.temperature,
            "max_output_tokens": self._config.ai.max_output_tokens,
        }
        params.update({k: v for k, v in overrides.items() if v is not None})
        return GenerationConfig(**params)

    def _get_safety_settings(self) -> dict[Any, Any]:
        # Travel photos routinely show people, including children
        return {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_ONLY_HIGH,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
        }

    def generate(
        self,
        prompt: str | list[Any],
        system_instruction: str | None = None,
        model: str | None = None,
        **overrides: Any,
    ) -> AIResponse:
        """Run one generation call.

        Args:
            prompt: Text prompt, or a list of parts (text and
                ``{"mime_type": ..., "data": ...}`` image blobs).
            system_instruction: Optional system instruction.
            model: Model name override.
            **overrides: GenerationConfig overrides (temperature,
                max_output_tokens, response_mime_type).

        Returns:
            AIResponse with the generated text.

        Raises:
            AIUnavailableError: If AI is disabled or no key is configured.
            AIClientError: Any mapped SDK failure, including timeouts.
        """
        self._ensure_available()

        model_name = model or self._config.ai.model_name
        parts = prompt if isinstance(prompt, list) else [prompt]
        start_time = time.time()

        try:
            raw_response = self._do_generate(
                model_name=model_name,
                system_instruction=system_instruction,
                contents=[{"role": "user", "parts": parts}],
                generation_config=self._get_generation_config(**overrides),
            )
        except Exception as e:
            mapped = self._map_exception(e, model_name)
            self._logger.error(f"Generation failed: {type(mapped).__name__}")
            raise mapped from e

        latency_ms = (time.time() - start_time) * 1000

        try:
            text = raw_response.text
        except ValueError:
            feedback = getattr(raw_response, "prompt_feedback", None)
            block_reason = getattr(feedback, "block_reason", None)
            if block_reason:
                raise ContentBlockedError(blocked_reason=str(block_reason))
            text = ""

        prompt_tokens = completion_tokens = total_tokens = None
        usage = getattr(raw_response, "usage_metadata", None)
        if usage:
            prompt_tokens = getattr(usage, "prompt_token_count", None)
            completion_tokens = getattr(usage, "candidates_token_count", None)
            total_tokens = getattr(usage, "total_token_count", None)

        finish_reason = None
        candidates = getattr(raw_response, "candidates", None)
        if candidates:
            reason = getattr(candidates[0], "finish_reason", None)
            finish_reason = getattr(reason, "name", None) if reason is not None else None

        self._logger.debug(
            f"Generation successful: {total_tokens or '?'} tokens in {latency_ms:.0f}ms"
        )

        return AIResponse(
            text=text,
            model=model_name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
            raw_response=raw_response,
        )

    def generate_json(
        self,
        prompt: str | list[Any],
        system_instruction: str | None = None,
        schema_hint: str | None = None,
        model: str | None = None,
        **overrides: Any,
    ) -> StructuredAIResponse:
        """Generate and parse a JSON response.

        A response that cannot be parsed is returned with
        ``parse_success=False`` rather than raised.
        """
        json_instruction = (
            "You must respond with valid JSON only. No markdown, no explanations, "
            "no code blocks - just pure JSON that can be parsed directly."
        )
        full_instruction = (
            f"{system_instruction}\n\n{json_instruction}" if system_instruction else json_instruction
        )

        if schema_hint:
            hint = f"\n\nRespond with JSON matching this schema:\n{schema_hint}"
            if isinstance(prompt, list):
                prompt = [*prompt, hint]
            else:
                prompt = f"{prompt}{hint}"

        overrides.setdefault("response_mime_type", "application/json")
        response = self.generate(
            prompt=prompt,
            system_instruction=full_instruction,
            model=model,
            **overrides,
        )

        data, parse_error = extract_json(response.text)
        if parse_error:
            self._logger.debug(f"Structured response not parseable: {parse_error}")

        return StructuredAIResponse(
            data=data,
            raw_text=response.text,
            model=response.model,
            tokens_used=response.total_tokens,
            latency_ms=response.latency_ms,
            parse_success=parse_error is None,
            parse_error=parse_error,
        )

    def _do_generate(
        self,
        model_name: str,
        system_instruction: str | None,
        contents: list[dict[str, Any]],
        generation_config: GenerationConfig,
    ) -> Any:
        model = genai.GenerativeModel(
            model_name=model_name,
            system_instruction=system_instruction,
            safety_settings=self._get_safety_settings(),
        )
        return model.generate_content(
            contents,
            generation_config=generation_config,
            request_options={"timeout": self._config.ai.timeout_seconds},
        )

    def _map_exception(self, error: Exception, model_name: str) -> AIClientError:
        """Map SDK exceptions onto the AIClientError hierarchy."""
        if isinstance(error, AIClientError):
            return error

        error_str = str(error).lower()
        timeout = self._config.ai.timeout_seconds

        if isinstance(error, google_exceptions.InvalidArgument):
            return AIBadRequestError(str(error), original_error=error)
        if isinstance(error, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
            return AIAuthenticationError(original_error=error)
        if isinstance(error, google_exceptions.ResourceExhausted):
            if "quota" in error_str:
                return AIQuotaExceededError(original_error=error)
            return AIRateLimitError(original_error=error)
        if isinstance(error, google_exceptions.NotFound):
            return ModelNotAvailableError(model_name, original_error=error)
        if isinstance(error, google_exceptions.DeadlineExceeded):
            return AITimeoutError(timeout, original_error=error)
        if isinstance(error, google_exceptions.InternalServerError):
            return AIServerError(status_code=500, original_error=error)
        if isinstance(error, google_exceptions.ServiceUnavailable):
            return AIServerError(status_code=503, original_error=error)
        if isinstance(error, TimeoutError):
            return AITimeoutError(timeout, original_error=error)
        if isinstance(error, ConnectionError):
            return AIUnavailableError("offline", str(error))

        if "blocked" in error_str or "safety" in error_str:
            return ContentBlockedError(original_error=error)
        if "401" in error_str or "403" in error_str or "unauthorized" in error_str:
            return AIAuthenticationError(original_error=error)
        if "429" in error_str or "rate limit" in error_str:
            return AIRateLimitError(original_error=error)
        if "quota" in error_str or "billing" in error_str:
            return AIQuotaExceededError(original_error=error)
        if "timeout" in error_str or "deadline" in error_str:
            return AITimeoutError(timeout, original_error=error)
        if "500" in error_str or "502" in error_str or "503" in error_str:
            return AIServerError(original_error=error)
        if "model" in error_str and "not found" in error_str:
            return ModelNotAvailableError(model_name, original_error=error)

        return AIClientError(str(error), retriable=False, original_error=error)


# =============================================================================
# Module-Level Functions
# =============================================================================


def get_client(config: AppConfig | None = None, api_key: str | None = None) -> AIClient:
    """Build a client for injection into the pipelines.

    Never raises for a missing key; check ``is_available()`` instead.
    """
    return AIClient(config=config, api_key=api_key)
