"""Prometheus metrics for model calls, answers and ingestion."""

from prometheus_client import Counter, Histogram

# Model call metrics
llm_latency_ms = Histogram(
    "llm_latency_ms",
    "Text-generation call latency in milliseconds",
    ["model", "outcome"],
    buckets=[50, 100, 250, 500, 1000, 2000, 5000, 10000, 20000],
)

llm_errors_total = Counter(
    "llm_errors_total",
    "Total text-generation call errors",
    ["model", "reason"],
)

llm_fallbacks_total = Counter(
    "llm_fallbacks_total",
    "Total retryable model failures in the fallback chain",
    ["from_model"],
)

# Answer metrics
answers_total = Counter(
    "answers_total",
    "Total answered questions by response mode",
    ["mode"],
)

# Search metrics
searches_total = Counter(
    "searches_total",
    "Total document searches by outcome",
    ["status"],
)

# Ingestion metrics
documents_processed_total = Counter(
    "documents_processed_total",
    "Total processed documents by final status",
    ["status"],
)


class PrometheusLLMMetrics:
    """Prometheus-based model call metrics implementation."""

    def record_latency(self, model: str, outcome: str, latency_ms: float) -> None:
        """Record model call latency."""
        llm_latency_ms.labels(model=model, outcome=outcome).observe(latency_ms)

    def inc_error(self, model: str, reason: str) -> None:
        """Increment error counter."""
        llm_errors_total.labels(model=model, reason=reason).inc()

    def inc_fallback(self, from_model: str) -> None:
        """Increment fallback counter."""
        llm_fallbacks_total.labels(from_model=from_model).inc()


def record_answer(mode: str) -> None:
    answers_total.labels(mode=mode).inc()


def record_document_processed(status: str) -> None:
    documents_processed_total.labels(status=status).inc()


def record_search(status: str) -> None:
    searches_total.labels(status=status).inc()
