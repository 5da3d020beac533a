from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from fastapi import Response

from ai_bridge.llm_adapter.models import GenerationResult


generation_requests = Counter(
    "generation_requests_total",
    "Total generation requests by outcome",
    ["model", "provider", "outcome"],
)

generation_latency = Histogram(
    "generation_latency_seconds",
    "Wall-clock time from submit to terminal state",
    ["model"],
    buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

llm_tokens = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["model", "direction"],
)

llm_cost = Counter(
    "llm_estimated_cost_usd_total",
    "Estimated spend in USD",
    ["model"],
)

cache_lookups = Counter(
    "response_cache_lookups_total",
    "Response cache lookups",
    ["result"],
)


def observe_result(result: GenerationResult) -> None:
    outcome = "cache_hit" if result.from_cache else (
        result.error.value if result.error else "success"
    )
    labels = {"model": result.model_id, "provider": result.provider_id or "unresolved"}
    generation_requests.labels(outcome=outcome, **labels).inc()
    generation_latency.labels(model=result.model_id).observe(result.duration_ms / 1000)

    if not result.from_cache and result.ok:
        usage = result.token_usage
        llm_tokens.labels(model=result.model_id, direction="prompt").inc(usage.prompt_tokens)
        llm_tokens.labels(model=result.model_id, direction="completion").inc(usage.completion_tokens)
        llm_cost.labels(model=result.model_id).inc(result.estimated_cost_usd)


def metrics_response() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
