"""Answer orchestrator - grounding prompt, model fallback chain, degraded modes.

Flow for a question with retrieved chunks:
    1. No provider configured -> SelectDocuments
    2. Build the grounding prompt (capped context)
    3. Try the preferred model, then each fallback model in order
       - retryable failures (rate limit, unknown model, timeout) move on
       - auth failures and unreachable provider -> SelectDocuments
       - any other fatal failure propagates as a service error
    4. Every model retryable-failed -> extractive answer built from the chunks
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from pydantic import ValidationError

from backend.app.config import Settings
from backend.app.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderTimeoutError,
    ProviderTransientError,
    ProviderUnavailableError,
)
from backend.app.llm.client import LLMProvider
from backend.app.models.answer import GraphPlan
from backend.app.models.docs import RetrievedChunk
from backend.app.utils.logging import StructuredLLMLogger
from backend.app.utils.metrics import PrometheusLLMMetrics

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "I couldn't find information about this in the available documents."
NO_DOCUMENTS_MARKER = "--- NO RELEVANT DOCUMENTS FOUND ---"
EXTRACTIVE_HEADING = "Here are the most relevant excerpts from your documents:"
SELECTED_EXTRACTIVE_HEADING = "Here are the most relevant excerpts from your selected documents:"

QA_SYSTEM_PROMPT = f"""You are an AI assistant for an internal company knowledge base.
Your role is to answer questions ONLY based on the provided document excerpts.

CRITICAL RULES:
1. ONLY use information from the provided "CONTEXT" sections below
2. If the answer is NOT in the context, say "{NOT_FOUND_MESSAGE}"
3. NEVER make up information or use external knowledge
4. ALWAYS cite your sources using the document titles provided
5. Be concise and professional

When citing sources, use this format:
[Source: Document Title]

If multiple documents contain relevant information, cite all of them.
If the question is unclear, ask for clarification."""

GRAPH_PLAN_PROMPT = """You are building a knowledge graph from document excerpts.
Return ONLY valid JSON with this shape:
{{
  "keywords": ["keyword1", "keyword2", "keyword3"],
  "chunkRefs": [
    {{"documentTitle": "Title A", "chunkIndex": 0}},
    {{"documentTitle": "Title B", "chunkIndex": 2}}
  ],
  "docLinks": [
    {{"sourceTitle": "Title A", "targetTitle": "Title B", "reason": "shared term"}}
  ]
}}

Question: {question}

Chunks:
{chunks}
"""

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def truncate(text: str, limit: int) -> str:
    """Cut text to ``limit`` characters, appending "..." when cut."""
    return text[:limit] + ("..." if len(text) > limit else "")


def build_context_prompt(
    chunks: Sequence[RetrievedChunk],
    *,
    max_chunks: int = 3,
    max_chars: int = 300,
) -> str:
    """Format chunks as the CONTEXT block of the prompt.

    Only the first ``max_chunks`` chunks are included, each truncated to
    ``max_chars``. Without chunks the block is the no-documents marker.
    """
    if not chunks:
        return NO_DOCUMENTS_MARKER

    parts = ["--- CONTEXT START ---", ""]
    for chunk in chunks[:max_chunks]:
        parts.append(f"[Document: {chunk.document_title}]")
        parts.append(truncate(chunk.text, max_chars))
        parts.append("")
    parts.append("--- CONTEXT END ---")
    return "\n".join(parts)


def build_prompt(question: str, context: str) -> str:
    return f"{QA_SYSTEM_PROMPT}\n\n{context}\n\nQUESTION: {question}\n\nANSWER:"


def build_extractive_answer(
    chunks: Sequence[RetrievedChunk],
    *,
    heading: str = EXTRACTIVE_HEADING,
    excerpt_chars: int = 200,
) -> str:
    """Non-AI answer: first excerpt of each document, in rank order.

    Returns the not-found message when there are no chunks.
    """
    first_excerpt: dict[str, str] = {}
    for chunk in chunks:
        if chunk.document_title not in first_excerpt:
            first_excerpt[chunk.document_title] = truncate(chunk.text, excerpt_chars)

    if not first_excerpt:
        return NOT_FOUND_MESSAGE

    lines = [f'• {title}: "{excerpt}"' for title, excerpt in first_excerpt.items()]
    return f"{heading}\n\n" + "\n".join(lines)


def parse_graph_plan(text: str) -> GraphPlan | None:
    """Extract the first JSON object of a model reply as a GraphPlan."""
    if not text:
        return None
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        return GraphPlan.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError):
        return None


@dataclass(frozen=True)
class GeneratedAnswer:
    """Model-written answer and the chunks that went into the prompt."""

    text: str
    model: str
    used_chunks: list[RetrievedChunk] = field(default_factory=list)


@dataclass(frozen=True)
class ExtractiveAnswer:
    """Excerpt-based answer used when every model failed retryably."""

    text: str
    used_chunks: list[RetrievedChunk] = field(default_factory=list)
    last_error: str | None = None


@dataclass(frozen=True)
class SelectDocuments:
    """The caller should pick documents to answer from."""

    reason: str


AnswerOutcome = GeneratedAnswer | ExtractiveAnswer | SelectDocuments


class AnswerOrchestrator:
    """Runs a prompt through the ordered model chain of one provider."""

    def __init__(
        self,
        provider: LLMProvider | None,
        *,
        primary_model: str,
        fallback_models: Sequence[str] = (),
        timeout_seconds: float = 20.0,
        prompt_max_chunks: int = 3,
        prompt_chunk_chars: int = 300,
        selected_prompt_max_chunks: int = 4,
        selected_prompt_chunk_chars: int = 350,
        excerpt_chars: int = 200,
        metrics: PrometheusLLMMetrics | None = None,
        call_logger: StructuredLLMLogger | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            provider: Text-generation provider, None when not configured
            primary_model: Model tried first unless the caller prefers another
            fallback_models: Models tried next, in order
            timeout_seconds: Hard timeout per model call
            metrics: Metrics recorder (optional)
            call_logger: Structured attempt logger (optional)
        """
        self.provider = provider
        self.primary_model = primary_model
        self.fallback_models = list(fallback_models)
        self.timeout_seconds = timeout_seconds
        self.prompt_max_chunks = prompt_max_chunks
        self.prompt_chunk_chars = prompt_chunk_chars
        self.selected_prompt_max_chunks = selected_prompt_max_chunks
        self.selected_prompt_chunk_chars = selected_prompt_chunk_chars
        self.excerpt_chars = excerpt_chars
        self._metrics = metrics or PrometheusLLMMetrics()
        self._call_logger = call_logger or StructuredLLMLogger()

    @classmethod
    def from_settings(cls, provider: LLMProvider | None, settings: Settings) -> "AnswerOrchestrator":
        return cls(
            provider,
            primary_model=settings.llm_primary_model,
            fallback_models=settings.llm_fallback_models,
            timeout_seconds=settings.llm_timeout_seconds,
            prompt_max_chunks=settings.prompt_max_chunks,
            prompt_chunk_chars=settings.prompt_chunk_chars,
            selected_prompt_max_chunks=settings.selected_prompt_max_chunks,
            selected_prompt_chunk_chars=settings.selected_prompt_chunk_chars,
            excerpt_chars=settings.citation_excerpt_chars,
        )

    @property
    def configured(self) -> bool:
        return self.provider is not None

    def model_chain(self, preferred_model: str | None = None) -> list[str]:
        """Preferred model, primary model, then fallbacks; duplicates removed, order kept."""
        chain = [
            (preferred_model or "").strip(),
            self.primary_model.strip(),
            *(m.strip() for m in self.fallback_models),
        ]
        return list(dict.fromkeys(m for m in chain if m))

    async def _call_model(self, prompt: str, model: str, attempt: int) -> str:
        assert self.provider is not None
        start = time.monotonic()
        try:
            text = await asyncio.wait_for(
                self.provider.generate(prompt, model=model), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            self._record_failure(model, attempt, elapsed_ms, "timeout", None)
            raise ProviderTimeoutError(
                f"{model} timed out after {self.timeout_seconds}s", model=model
            ) from e
        except ProviderError as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            self._record_failure(model, attempt, elapsed_ms, type(e).__name__, e.status)
            raise

        elapsed_ms = (time.monotonic() - start) * 1000
        self._metrics.record_latency(model, "success", elapsed_ms)
        self._call_logger.log_attempt(model, attempt, "success", elapsed_ms)
        return text

    def _record_failure(
        self,
        model: str,
        attempt: int,
        elapsed_ms: float,
        reason: str,
        status: int | None,
    ) -> None:
        self._metrics.record_latency(model, "error", elapsed_ms)
        self._metrics.inc_error(model, reason)
        self._call_logger.log_attempt(
            model, attempt, "error", elapsed_ms, error_reason=reason, status=status
        )

    async def generate_with_fallback(
        self,
        prompt: str,
        preferred_model: str | None = None,
    ) -> tuple[str, str]:
        """Call each model in the chain until one succeeds.

        Returns:
            (text, model_used)

        Raises:
            ProviderTransientError: Every model failed retryably (last error)
            ProviderFatalError: A fatal failure stopped the chain
        """
        last_error: ProviderTransientError | None = None

        for attempt, model in enumerate(self.model_chain(preferred_model), start=1):
            try:
                text = await self._call_model(prompt, model, attempt)
            except ProviderTransientError as e:
                last_error = e
                self._metrics.inc_fallback(model)
                logger.warning(f"Model {model} failed retryably ({type(e).__name__}); trying next")
                continue
            return text, model

        if last_error is None:
            raise ProviderTransientError("No models configured")
        raise last_error

    async def answer(
        self,
        question: str,
        chunks: Sequence[RetrievedChunk],
        preferred_model: str | None = None,
    ) -> AnswerOutcome:
        """Answer a question from retrieved chunks.

        Raises:
            ProviderFatalError: Fatal provider failure other than auth/unreachable
        """
        if self.provider is None:
            return SelectDocuments(reason="not_configured")

        context = build_context_prompt(
            chunks, max_chunks=self.prompt_max_chunks, max_chars=self.prompt_chunk_chars
        )
        prompt = build_prompt(question, context)
        logger.debug(f"Generated prompt ({len(prompt)} chars, {len(chunks)} chunks)")

        try:
            text, model = await self.generate_with_fallback(prompt, preferred_model)
        except ProviderTransientError as e:
            logger.warning(f"All models failed retryably; answering extractively: {e}")
            return ExtractiveAnswer(
                text=build_extractive_answer(chunks, excerpt_chars=self.excerpt_chars),
                used_chunks=list(chunks),
                last_error=str(e),
            )
        except (ProviderAuthError, ProviderUnavailableError) as e:
            logger.error(f"Provider unusable ({type(e).__name__}); offering document selection")
            return SelectDocuments(reason=type(e).__name__)

        return GeneratedAnswer(
            text=text, model=model, used_chunks=list(chunks[: self.prompt_max_chunks])
        )

    async def answer_selected(
        self,
        question: str,
        chunks: Sequence[RetrievedChunk],
        preferred_model: str | None = None,
    ) -> GeneratedAnswer | ExtractiveAnswer:
        """Answer from caller-selected chunks; any provider failure degrades to excerpts."""
        extractive = ExtractiveAnswer(
            text=build_extractive_answer(
                chunks, heading=SELECTED_EXTRACTIVE_HEADING, excerpt_chars=self.excerpt_chars
            ),
            used_chunks=list(chunks),
        )
        if self.provider is None:
            return extractive

        context = build_context_prompt(
            chunks,
            max_chunks=self.selected_prompt_max_chunks,
            max_chars=self.selected_prompt_chunk_chars,
        )
        prompt = build_prompt(question, context)

        try:
            text, model = await self.generate_with_fallback(prompt, preferred_model)
        except ProviderError as e:
            logger.warning(f"Selected-document answer degraded to excerpts: {e}")
            return ExtractiveAnswer(
                text=extractive.text, used_chunks=extractive.used_chunks, last_error=str(e)
            )

        return GeneratedAnswer(text=text, model=model, used_chunks=list(chunks))

    async def propose_graph_plan(
        self,
        question: str,
        chunks: Sequence[RetrievedChunk],
        preferred_model: str | None = None,
    ) -> GraphPlan | None:
        """Ask the model which keywords, chunks and document links to draw.

        Any failure (provider error, unparsable reply) returns None so the
        caller falls back to the heuristic graph.
        """
        if self.provider is None or not chunks:
            return None

        snippets = [
            {
                "documentTitle": chunk.document_title,
                "chunkIndex": chunk.chunk_index,
                "text": chunk.text[:300],
            }
            for chunk in chunks[:12]
        ]
        prompt = GRAPH_PLAN_PROMPT.format(question=question, chunks=json.dumps(snippets, indent=2))

        try:
            text, _ = await self.generate_with_fallback(prompt, preferred_model)
        except ProviderError as e:
            logger.warning(f"Failed to generate graph plan; using heuristic: {e}")
            return None

        plan = parse_graph_plan(text)
        if plan is None:
            logger.warning("Graph plan reply was not valid JSON; using heuristic")
        return plan
