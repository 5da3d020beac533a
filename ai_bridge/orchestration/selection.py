"""
Model selection for requests that name the ``auto`` model.

Candidates are the registry models whose provider has an adapter with a
credential and whose context window fits the request. Among those:

  cheapest  lowest estimated cost for the prompt plus the full output budget
  fastest   lowest typical latency
  balanced  lowest normalised cost + normalised latency

Ties fall back to the model id so the choice is deterministic, which keeps
``auto`` requests cacheable.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from ai_bridge.llm_adapter.base import estimate_tokens
from ai_bridge.llm_adapter.errors import ConfigurationError
from ai_bridge.llm_adapter.models import GenerationRequest, ModelDescriptor

AUTO_MODEL_ID = "auto"


class SelectionPolicy(str, Enum):
    CHEAPEST = "cheapest"
    FASTEST = "fastest"
    BALANCED = "balanced"


def fits_context(request: GenerationRequest, descriptor: ModelDescriptor) -> bool:
    needed = estimate_tokens(request.prompt_text) + request.max_output_tokens
    return needed <= descriptor.max_context_tokens


def select_model(
    request: GenerationRequest,
    candidates: Iterable[ModelDescriptor],
    policy: SelectionPolicy = SelectionPolicy.BALANCED,
) -> ModelDescriptor:
    fitting = [d for d in candidates if fits_context(request, d)]
    if not fitting:
        raise ConfigurationError(
            "No available model can serve this request (no provider configured "
            "or prompt exceeds every context window)"
        )

    prompt_tokens = estimate_tokens(request.prompt_text)

    def cost(d: ModelDescriptor) -> float:
        return d.estimate_cost(prompt_tokens, request.max_output_tokens)

    if policy is SelectionPolicy.CHEAPEST:
        return min(fitting, key=lambda d: (cost(d), d.id))
    if policy is SelectionPolicy.FASTEST:
        return min(fitting, key=lambda d: (d.typical_latency_ms, d.id))

    max_cost = max(cost(d) for d in fitting) or 1.0
    max_latency = max(d.typical_latency_ms for d in fitting) or 1
    return min(
        fitting,
        key=lambda d: (cost(d) / max_cost + d.typical_latency_ms / max_latency, d.id),
    )
