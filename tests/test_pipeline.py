"""Tests for tripweave.ai.pipeline - the shared step state machine."""

from __future__ import annotations

import logging

import pytest

from tripweave.ai.client import AIClientError
from tripweave.ai.pipeline import (
    GenerationPipeline,
    Invocation,
    ModelInvoker,
    PipelineState,
    PromptRequest,
)
from tripweave.ai.prompts import STORY_TITLE_PROMPT, TRAVEL_TAGS_PROMPT

REQUEST = PromptRequest(system_instruction="sys", user_prompt="user")
TEXT_REQUEST = PromptRequest(system_instruction="sys", user_prompt="user", json_output=False)


class Recorder:
    """Collects ``(pipeline, step, state)`` transitions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, PipelineState]] = []

    def __call__(self, pipeline: str, step: str, state: PipelineState) -> None:
        self.events.append((pipeline, step, state))

    def states(self) -> list[PipelineState]:
        return [state for _, _, state in self.events]


def run(pipeline: GenerationPipeline, request: PromptRequest | None = REQUEST):
    return pipeline.run_step(
        "step",
        lambda: request,
        lambda inv: ("parsed", inv.payload()),
        lambda: ("fallback", None),
    )


# =============================================================================
# State Machine
# =============================================================================


class TestRunStep:
    """ASSEMBLING -> INVOKING -> PARSING | FALLING_BACK -> DONE."""

    def test_parse_path(self, make_client) -> None:
        recorder = Recorder()
        pipeline = GenerationPipeline(make_client({"ok": True}), on_state=recorder)
        assert run(pipeline) == ("parsed", {"ok": True})
        assert recorder.states() == [
            PipelineState.ASSEMBLING,
            PipelineState.INVOKING,
            PipelineState.PARSING,
            PipelineState.DONE,
        ]
        assert recorder.events[0][:2] == ("pipeline", "step")

    def test_no_client_falls_back_without_assembling(self) -> None:
        recorder = Recorder()
        assembled = []
        pipeline = GenerationPipeline(None, on_state=recorder)
        result = pipeline.run_step(
            "step",
            lambda: assembled.append(1) or REQUEST,
            lambda inv: "parsed",
            lambda: "fallback",
        )
        assert result == "fallback"
        assert assembled == []
        assert recorder.states() == [
            PipelineState.ASSEMBLING,
            PipelineState.FALLING_BACK,
            PipelineState.DONE,
        ]

    def test_unavailable_client_never_called(self, unavailable_client) -> None:
        assert run(GenerationPipeline(unavailable_client)) == ("fallback", None)
        unavailable_client.generate_json.assert_not_called()

    def test_nothing_to_send(self, make_client) -> None:
        """An assembler returning None skips the remote call."""
        client = make_client({"ok": True})
        recorder = Recorder()
        assert run(GenerationPipeline(client, on_state=recorder), None) == ("fallback", None)
        client.generate_json.assert_not_called()
        assert PipelineState.INVOKING not in recorder.states()

    def test_remote_failure_falls_back(self, failing_client, caplog) -> None:
        """A failed call is logged at error level with pipeline and step."""
        with caplog.at_level(logging.ERROR, logger="tripweave"):
            assert run(GenerationPipeline(failing_client)) == ("fallback", None)
        assert failing_client.generate_json.call_count == 1
        assert any("pipeline.step" in r.getMessage() for r in caplog.records)

    def test_malformed_json_is_parsed_as_empty(self, make_client) -> None:
        client = make_client(["not", "a", "mapping"])
        assert run(GenerationPipeline(client)) == ("parsed", {})

    def test_unparsed_json_is_parsed_as_empty(self, make_client) -> None:
        client = make_client({"partial": 1}, parse_success=False)
        assert run(GenerationPipeline(client)) == ("parsed", {})

    def test_programming_errors_propagate(self, make_client) -> None:
        client = make_client()
        client.generate_json.side_effect = KeyError("bug")
        with pytest.raises(KeyError):
            run(GenerationPipeline(client))


# =============================================================================
# Invoker
# =============================================================================


class TestModelInvoker:
    def test_json_request(self, make_client) -> None:
        client = make_client({"a": 1})
        invocation = ModelInvoker(client).invoke(REQUEST, "x.y")
        assert invocation == Invocation(text='{"a": 1}', data={"a": 1}, model="gemini-1.5-flash")
        kwargs = client.generate_json.call_args.kwargs
        assert kwargs["system_instruction"] == "sys"
        assert kwargs["model"] is None

    def test_text_request(self, make_client) -> None:
        client = make_client(text="Hello")
        invocation = ModelInvoker(client).invoke(TEXT_REQUEST, "x.y")
        assert invocation.text == "Hello"
        assert invocation.data is None
        client.generate_json.assert_not_called()

    def test_images_use_vision_model(self, make_client) -> None:
        client = make_client({})
        image = {"mime_type": "image/jpeg", "data": b"x"}
        request = PromptRequest(system_instruction="s", user_prompt="u", images=[image])
        ModelInvoker(client).invoke(request, "x.y")
        args, kwargs = client.generate_json.call_args
        assert args[0] == ["u", image]
        assert kwargs["model"] == client.config.ai.vision_model

    def test_client_error_returns_none(self, make_client) -> None:
        client = make_client()
        client.generate_json.side_effect = AIClientError("boom")
        assert ModelInvoker(client).invoke(REQUEST, "x.y") is None

    def test_no_client(self) -> None:
        invoker = ModelInvoker(None)
        assert invoker.is_available() is False
        assert invoker.invoke(REQUEST, "x.y") is None


# =============================================================================
# Helpers
# =============================================================================


class TestPipelineHelpers:
    def test_build_request_uses_template_budget(self) -> None:
        pipeline = GenerationPipeline(None)
        request = pipeline.build_request(STORY_TITLE_PROMPT, language="English", excerpt="We left.")
        assert request.json_output is False
        assert request.max_output_tokens == STORY_TITLE_PROMPT.max_output_tokens
        assert request.temperature == STORY_TITLE_PROMPT.temperature
        assert "We left." in request.user_prompt

    def test_json_request_carries_schema_in_prompt(self, make_client) -> None:
        client = make_client({"tags": []})
        pipeline = GenerationPipeline(client)
        request = pipeline.build_request(TRAVEL_TAGS_PROMPT, photo_context="Lisbon")
        assert request.json_output is True
        assert '"tags"' in request.user_prompt
        ModelInvoker(client).invoke(request, "vision.tags")
        assert "schema_hint" not in client.generate_json.call_args.kwargs

    def test_clock_is_injected(self, fixed_clock) -> None:
        pipeline = GenerationPipeline(None, clock=fixed_clock)
        assert pipeline.now() == fixed_clock()
        assert pipeline.timestamp_ms() == int(fixed_clock().timestamp() * 1000)

    def test_load_image_requires_loader_and_ai(self, make_client, image_loader, sample_photos) -> None:
        assert GenerationPipeline(make_client()).load_image(sample_photos[0]) is None
        assert GenerationPipeline(None, image_loader=image_loader).load_image(sample_photos[0]) is None
        loaded = GenerationPipeline(make_client(), image_loader=image_loader).load_image(sample_photos[0])
        assert loaded["mime_type"] == "image/jpeg"
