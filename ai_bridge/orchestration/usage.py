"""
Usage tracking and cost accounting.

Accumulates token counts, cost estimates and error counts per model, per
provider and globally. Writers serialize on a lock and publish a freshly
built, immutable UsageReport; ``snapshot()`` just returns the current
reference, so reads never wait on writes.

Cache hits count as requests and cache hits but add no tokens or cost: no
provider was called for them.
"""

from __future__ import annotations

import logging
import threading

from ai_bridge.llm_adapter.models import GenerationResult, ModelUsage, UsageReport

logger = logging.getLogger(__name__)


def _bump(usage: ModelUsage | None, result: GenerationResult) -> ModelUsage:
    usage = usage or ModelUsage()
    spent = not result.from_cache
    tokens = result.token_usage
    return ModelUsage(
        requests=usage.requests + 1,
        prompt_tokens=usage.prompt_tokens + (tokens.prompt_tokens if spent else 0),
        completion_tokens=usage.completion_tokens + (tokens.completion_tokens if spent else 0),
        total_tokens=usage.total_tokens + (tokens.total_tokens if spent else 0),
        cost_usd=usage.cost_usd + (result.estimated_cost_usd if spent else 0.0),
        errors=usage.errors + (0 if result.ok else 1),
        cache_hits=usage.cache_hits + (1 if result.from_cache else 0),
    )


class UsageTracker:

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._report = UsageReport()

    def record(self, result: GenerationResult) -> None:
        with self._lock:
            current = self._report
            spent = not result.from_cache

            per_model = dict(current.per_model)
            per_model[result.model_id] = _bump(per_model.get(result.model_id), result)

            per_provider = dict(current.per_provider)
            provider = result.provider_id or "unresolved"
            per_provider[provider] = _bump(per_provider.get(provider), result)

            errors_by_kind = dict(current.errors_by_kind)
            if result.error is not None:
                errors_by_kind[result.error.value] = errors_by_kind.get(result.error.value, 0) + 1

            self._report = UsageReport(
                total_requests=current.total_requests + 1,
                total_tokens=current.total_tokens
                + (result.token_usage.total_tokens if spent else 0),
                total_cost_usd=current.total_cost_usd
                + (result.estimated_cost_usd if spent else 0.0),
                error_count=current.error_count + (0 if result.ok else 1),
                cache_hits=current.cache_hits + (1 if result.from_cache else 0),
                per_model=per_model,
                per_provider=per_provider,
                errors_by_kind=errors_by_kind,
            )

    def snapshot(self) -> UsageReport:
        # published reports are never mutated, so copying needs no lock
        return self._report.model_copy(deep=True)

    def reset(self) -> None:
        with self._lock:
            self._report = UsageReport()
        logger.info("Usage counters reset")
