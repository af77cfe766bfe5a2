"""Tests for the answer orchestrator: fallback chain and degraded modes."""

import asyncio
import uuid
from unittest.mock import MagicMock

import pytest

from backend.app.errors import (
    ProviderAuthError,
    ProviderFatalError,
    ProviderModelNotFoundError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from backend.app.models.docs import RetrievedChunk
from backend.app.qa.orchestrator import (
    EXTRACTIVE_HEADING,
    NO_DOCUMENTS_MARKER,
    NOT_FOUND_MESSAGE,
    SELECTED_EXTRACTIVE_HEADING,
    AnswerOrchestrator,
    ExtractiveAnswer,
    GeneratedAnswer,
    SelectDocuments,
    build_context_prompt,
    build_extractive_answer,
    parse_graph_plan,
)

MODELS = ["model-a", "model-b", "model-c"]


class FakeProvider:
    """Scripted provider: per-model exception or reply, records every call."""

    def __init__(
        self,
        script: dict[str, Exception | str] | None = None,
        default: Exception | str = "Default answer",
        delay: float = 0.0,
    ):
        self.script = script or {}
        self.default = default
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, *, model: str) -> str:
        self.calls.append((model, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.script.get(model, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def models_called(self) -> list[str]:
        return [model for model, _ in self.calls]


def _chunk(title: str, index: int = 0, text: str | None = None) -> RetrievedChunk:
    return RetrievedChunk(
        text=text or f"{title} chunk {index} text.",
        chunk_index=index,
        document_id=uuid.uuid4(),
        document_title=title,
        document_hash="ABC",
    )


def _orchestrator(provider: FakeProvider | None, **kwargs: object) -> AnswerOrchestrator:
    kwargs.setdefault("metrics", MagicMock())
    kwargs.setdefault("call_logger", MagicMock())
    return AnswerOrchestrator(
        provider,
        primary_model=MODELS[0],
        fallback_models=MODELS[1:],
        **kwargs,
    )


def _rate_limited(model: str) -> ProviderRateLimitError:
    return ProviderRateLimitError("quota exceeded", model=model, status=429)


class TestModelChain:
    def test_primary_then_fallbacks(self) -> None:
        assert _orchestrator(None).model_chain() == MODELS

    def test_preferred_model_first_without_duplicates(self) -> None:
        orchestrator = _orchestrator(None)

        assert orchestrator.model_chain("model-b") == ["model-b", "model-a", "model-c"]
        assert orchestrator.model_chain("other") == ["other", *MODELS]

    def test_duplicate_fallbacks_collapsed(self) -> None:
        orchestrator = AnswerOrchestrator(
            None, primary_model="gpt-4o-mini", fallback_models=["gpt-4.1-mini", "gpt-4o-mini"]
        )

        assert orchestrator.model_chain() == ["gpt-4o-mini", "gpt-4.1-mini"]


class TestAnswer:
    @pytest.mark.asyncio
    async def test_success_uses_first_model(self) -> None:
        provider = FakeProvider(default="Twenty days. [Source: Vacation Policy]")
        chunks = [_chunk("Vacation Policy", i) for i in range(5)]

        outcome = await _orchestrator(provider).answer("How many days?", chunks)

        assert isinstance(outcome, GeneratedAnswer)
        assert outcome.model == "model-a"
        assert outcome.text.startswith("Twenty days")
        assert outcome.used_chunks == chunks[:3]
        assert provider.models_called == ["model-a"]

    @pytest.mark.asyncio
    async def test_prompt_is_grounded_and_capped(self) -> None:
        provider = FakeProvider()
        chunks = [_chunk(f"Doc {i}", text=f"Body{i} " + "x" * 400) for i in range(5)]

        await _orchestrator(provider).answer("What is covered?", chunks)

        prompt = provider.calls[0][1]
        assert "--- CONTEXT START ---" in prompt
        assert "[Document: Doc 0]" in prompt
        assert "[Document: Doc 2]" in prompt
        assert "[Document: Doc 3]" not in prompt
        assert "QUESTION: What is covered?" in prompt
        assert prompt.rstrip().endswith("ANSWER:")
        assert "x" * 301 not in prompt

    @pytest.mark.asyncio
    async def test_zero_chunks_prompt_carries_marker(self) -> None:
        provider = FakeProvider(default=NOT_FOUND_MESSAGE)

        outcome = await _orchestrator(provider).answer("Unknown topic?", [])

        assert NO_DOCUMENTS_MARKER in provider.calls[0][1]
        assert isinstance(outcome, GeneratedAnswer)
        assert outcome.used_chunks == []

    @pytest.mark.asyncio
    async def test_retryable_failure_falls_back_to_next_model(self) -> None:
        metrics = MagicMock()
        provider = FakeProvider(
            script={
                "model-a": _rate_limited("model-a"),
                "model-b": ProviderModelNotFoundError("gone", model="model-b", status=404),
            },
            default="From model c",
        )

        outcome = await _orchestrator(provider, metrics=metrics).answer("q", [_chunk("Doc")])

        assert isinstance(outcome, GeneratedAnswer)
        assert outcome.model == "model-c"
        assert provider.models_called == MODELS
        assert metrics.inc_fallback.call_count == 2

    @pytest.mark.asyncio
    async def test_unknown_preferred_model_falls_back_to_primary(self) -> None:
        provider = FakeProvider(
            script={"mistyped": ProviderModelNotFoundError("gone", model="mistyped", status=404)},
            default="From primary",
        )

        outcome = await _orchestrator(provider).answer(
            "q", [_chunk("Doc")], preferred_model="mistyped"
        )

        assert isinstance(outcome, GeneratedAnswer)
        assert outcome.model == "model-a"
        assert provider.models_called == ["mistyped", "model-a"]

    @pytest.mark.asyncio
    async def test_all_models_rate_limited_gives_extractive_answer(self) -> None:
        provider = FakeProvider(script={m: _rate_limited(m) for m in MODELS})
        chunks = [
            _chunk("Vacation Policy", 0, "Employees accrue twenty days of vacation each year."),
            _chunk("Vacation Policy", 1, "Second chunk of the same document."),
            _chunk("Handbook", 0, "The handbook covers leave."),
        ]

        outcome = await _orchestrator(provider).answer("How much vacation?", chunks)

        assert len(provider.calls) == 3
        assert isinstance(outcome, ExtractiveAnswer)
        assert outcome.text.startswith(EXTRACTIVE_HEADING)
        assert "Vacation Policy" in outcome.text
        assert "Employees accrue twenty days" in outcome.text
        assert "Second chunk" not in outcome.text
        assert outcome.used_chunks == chunks
        assert "quota exceeded" in (outcome.last_error or "")

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self) -> None:
        provider = FakeProvider(default="late", delay=1.0)

        outcome = await _orchestrator(provider, timeout_seconds=0.01).answer("q", [_chunk("Doc")])

        assert isinstance(outcome, ExtractiveAnswer)
        assert provider.models_called == MODELS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            ProviderAuthError("bad key", model="model-a", status=401),
            ProviderUnavailableError("connection refused", model="model-a"),
        ],
    )
    async def test_unusable_provider_offers_document_selection(self, error: Exception) -> None:
        provider = FakeProvider(script={"model-a": error})

        outcome = await _orchestrator(provider).answer("q", [_chunk("Doc")])

        assert isinstance(outcome, SelectDocuments)
        assert provider.models_called == ["model-a"]

    @pytest.mark.asyncio
    async def test_other_fatal_error_propagates(self) -> None:
        provider = FakeProvider(
            script={"model-a": ProviderFatalError("forbidden", model="model-a", status=403)}
        )

        with pytest.raises(ProviderFatalError):
            await _orchestrator(provider).answer("q", [_chunk("Doc")])

        assert provider.models_called == ["model-a"]

    @pytest.mark.asyncio
    async def test_no_provider_offers_document_selection(self) -> None:
        outcome = await _orchestrator(None).answer("q", [_chunk("Doc")])

        assert outcome == SelectDocuments(reason="not_configured")

    @pytest.mark.asyncio
    async def test_attempts_are_logged_and_measured(self) -> None:
        metrics = MagicMock()
        call_logger = MagicMock()
        provider = FakeProvider(script={"model-a": _rate_limited("model-a")})

        await _orchestrator(provider, metrics=metrics, call_logger=call_logger).answer(
            "q", [_chunk("Doc")]
        )

        metrics.inc_error.assert_called_once_with("model-a", "ProviderRateLimitError")
        assert metrics.record_latency.call_count == 2
        outcomes = [c.args[2] for c in call_logger.log_attempt.call_args_list]
        assert outcomes == ["error", "success"]


class TestAnswerSelected:
    @pytest.mark.asyncio
    async def test_uses_wider_context(self) -> None:
        provider = FakeProvider()
        chunks = [_chunk(f"Doc {i}") for i in range(6)]

        outcome = await _orchestrator(provider).answer_selected("q", chunks)

        assert isinstance(outcome, GeneratedAnswer)
        assert "[Document: Doc 3]" in provider.calls[0][1]
        assert "[Document: Doc 4]" not in provider.calls[0][1]
        assert outcome.used_chunks == chunks

    @pytest.mark.asyncio
    async def test_any_provider_error_degrades_to_excerpts(self) -> None:
        provider = FakeProvider(default=ProviderAuthError("bad key", status=401))

        outcome = await _orchestrator(provider).answer_selected("q", [_chunk("Doc")])

        assert isinstance(outcome, ExtractiveAnswer)
        assert outcome.text.startswith(SELECTED_EXTRACTIVE_HEADING)

    @pytest.mark.asyncio
    async def test_without_provider_answers_extractively(self) -> None:
        outcome = await _orchestrator(None).answer_selected("q", [_chunk("Doc")])

        assert isinstance(outcome, ExtractiveAnswer)
        assert outcome.last_error is None


class TestGraphPlan:
    def test_parse_plan_from_wrapped_reply(self) -> None:
        reply = (
            "Here is the plan:\n```json\n"
            '{"keywords": ["leave"], "chunkRefs": [{"documentTitle": "A", "chunkIndex": 1}],'
            ' "docLinks": [{"sourceTitle": "A", "targetTitle": "B", "reason": "leave"}]}\n```'
        )

        plan = parse_graph_plan(reply)

        assert plan is not None
        assert plan.keywords == ["leave"]
        assert plan.chunk_refs[0].document_title == "A"
        assert plan.chunk_refs[0].chunk_index == 1
        assert plan.doc_links[0].target_title == "B"

    @pytest.mark.parametrize("reply", ["", "no json here", "{not valid}", '{"chunkRefs": [1]}'])
    def test_unparsable_plan_is_none(self, reply: str) -> None:
        assert parse_graph_plan(reply) is None

    @pytest.mark.asyncio
    async def test_propose_plan_failure_returns_none(self) -> None:
        provider = FakeProvider(default=ProviderAuthError("bad key"))

        assert await _orchestrator(provider).propose_graph_plan("q", [_chunk("Doc")]) is None

    @pytest.mark.asyncio
    async def test_propose_plan(self) -> None:
        provider = FakeProvider(default='{"keywords": ["doc"], "chunkRefs": [], "docLinks": []}')

        plan = await _orchestrator(provider).propose_graph_plan("q", [_chunk("Doc")])

        assert plan is not None
        assert plan.keywords == ["doc"]
        assert '"documentTitle": "Doc"' in provider.calls[0][1]


def test_context_prompt_without_chunks_is_marker() -> None:
    assert build_context_prompt([]) == NO_DOCUMENTS_MARKER


def test_extractive_answer_without_chunks_is_not_found() -> None:
    assert build_extractive_answer([]) == NOT_FOUND_MESSAGE


def test_extractive_answer_truncates_excerpts() -> None:
    text = build_extractive_answer([_chunk("Doc", text="y" * 300)])

    assert f'• Doc: "{"y" * 200}..."' in text
