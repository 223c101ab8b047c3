"""Shared machinery for the generation pipelines.

Every model-backed step runs the same short state machine::

    ASSEMBLING -> INVOKING -> PARSING      -> DONE
                          \\-> FALLING_BACK -> DONE

``ASSEMBLING`` builds a :class:`PromptRequest` (or decides there is nothing
the model could work with). ``INVOKING`` makes at most one remote call
through :class:`ModelInvoker`. A response of any quality goes to
``PARSING``, where the step's parser fills every missing field with its
documented default. No client, AI disabled, or a failed call all go to
``FALLING_BACK``, which builds the same result shape from local data only.

Neither branch raises for availability problems. Exceptions other than
:class:`~tripweave.ai.client.AIClientError` are bugs and propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, TypeVar

from tripweave.ai.client import AIClient, AIClientError
from tripweave.ai.images import ImageLoader
from tripweave.ai.prompts import PromptTemplate
from tripweave.core.models import Photo

logger = logging.getLogger(__name__)

R = TypeVar("R")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineState(str, Enum):
    """States of one model-backed step."""

    ASSEMBLING = "assembling"
    INVOKING = "invoking"
    PARSING = "parsing"
    FALLING_BACK = "falling_back"
    DONE = "done"


StateObserver = Callable[[str, str, PipelineState], None]


@dataclass(frozen=True)
class PromptRequest:
    """Everything needed for one remote call.

    Attributes:
        system_instruction: Role/behaviour instruction.
        user_prompt: The rendered user prompt.
        json_output: Request a JSON object rather than free text.
        max_output_tokens: Per-call response budget.
        temperature: Per-call sampling temperature.
        images: Image parts to attach (multimodal steps only).
    """

    system_instruction: str
    user_prompt: str
    json_output: bool = True
    max_output_tokens: int | None = None
    temperature: float | None = None
    images: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class Invocation:
    """Raw outcome of a successful remote call.

    ``data`` is the decoded JSON payload for JSON requests (``{}`` when the
    text was not parseable) and None for text requests.
    """

    text: str
    data: Any = None
    model: str = ""

    def payload(self) -> dict[str, Any]:
        """The JSON payload as a mapping; anything else becomes ``{}``."""
        return self.data if isinstance(self.data, dict) else {}


class ModelInvoker:
    """Guarded single call to the remote model.

    Returns None (= unavailable) instead of raising when there is no client,
    AI is disabled, no key is configured, or the call fails.
    """

    def __init__(self, client: AIClient | None) -> None:
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None and self._client.is_available()

    def invoke(self, request: PromptRequest, label: str) -> Invocation | None:
        """Perform exactly one remote call.

        Args:
            request: Prompt and generation parameters.
            label: ``pipeline.step`` name used in the error log line.
        """
        if not self.is_available():
            return None

        prompt: str | list[Any] = request.user_prompt
        if request.images:
            prompt = [request.user_prompt, *request.images]
        model = self._client.config.ai.vision_model if request.images else None

        try:
            if request.json_output:
                structured = self._client.generate_json(
                    prompt,
                    system_instruction=request.system_instruction,
                    model=model,
                    max_output_tokens=request.max_output_tokens,
                    temperature=request.temperature,
                )
                return Invocation(
                    text=structured.raw_text,
                    data=structured.data if structured.parse_success else {},
                    model=structured.model,
                )

            response = self._client.generate(
                prompt,
                system_instruction=request.system_instruction,
                model=model,
                max_output_tokens=request.max_output_tokens,
                temperature=request.temperature,
            )
            return Invocation(text=response.text, model=response.model)
        except AIClientError as e:
            logger.error(f"{label}: remote model call failed ({type(e).__name__}); using fallback")
            return None


class GenerationPipeline:
    """Base class for the concrete pipelines.

    Args:
        client: Injected AI client. None means "always fall back".
        image_loader: Used by steps that attach the photo itself.
        clock: Source of timestamps and ids. Inject a fixed clock for
            reproducible output.
        on_state: Optional observer called as ``(pipeline, step, state)``
            on every state transition.
    """

    name = "pipeline"

    def __init__(
        self,
        client: AIClient | None = None,
        *,
        image_loader: ImageLoader | None = None,
        clock: Clock | None = None,
        on_state: StateObserver | None = None,
    ) -> None:
        self._invoker = ModelInvoker(client)
        self._image_loader = image_loader
        self._clock = clock or utc_now
        self._on_state = on_state

    @property
    def ai_available(self) -> bool:
        return self._invoker.is_available()

    def now(self) -> datetime:
        return self._clock()

    def timestamp_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def load_image(self, photo: Photo) -> dict[str, Any] | None:
        if self._image_loader is None or not self.ai_available:
            return None
        return self._image_loader.load(photo)

    def build_request(
        self,
        template: PromptTemplate,
        images: list[dict[str, Any]] | None = None,
        **variables: Any,
    ) -> PromptRequest:
        """Render a registered template into a request with its own budget."""
        system, user = template.render(**variables)
        return PromptRequest(
            system_instruction=system,
            user_prompt=user,
            json_output=template.json_output,
            max_output_tokens=template.max_output_tokens,
            temperature=template.temperature,
            images=list(images or []),
        )

    def _enter(self, step: str, state: PipelineState) -> None:
        logger.debug(f"{self.name}.{step}: {state.value}")
        if self._on_state is not None:
            self._on_state(self.name, step, state)

    def run_step(
        self,
        step: str,
        assemble: Callable[[], PromptRequest | None],
        parse: Callable[[Invocation], R],
        fallback: Callable[[], R],
    ) -> R:
        """Run one step through the state machine.

        Args:
            step: Step name for logs and observers.
            assemble: Builds the prompt; returning None skips the call.
            parse: Normalises a remote response into the result type.
            fallback: Builds the result from local data only.
        """
        self._enter(step, PipelineState.ASSEMBLING)
        request = assemble() if self.ai_available else None

        invocation: Invocation | None = None
        if request is not None:
            self._enter(step, PipelineState.INVOKING)
            invocation = self._invoker.invoke(request, f"{self.name}.{step}")

        if invocation is not None:
            self._enter(step, PipelineState.PARSING)
            result = parse(invocation)
        else:
            self._enter(step, PipelineState.FALLING_BACK)
            result = fallback()

        self._enter(step, PipelineState.DONE)
        return result
