"""Data models for the LLM adapter layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ErrorKind(str, Enum):
    UNKNOWN_MODEL = "unknown_model"
    MISSING_CREDENTIAL = "missing_credential"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    TRANSIENT_PROVIDER = "transient_provider"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ModelDescriptor(BaseModel):
    """
    Static profile of one logical model.

    Accepts the camelCase keys used in model table files
    (``providerId``, ``inputCostPerKTokens`` ...) as well as field names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    provider_id: str = Field(alias="providerId", min_length=1)
    input_cost_per_k_tokens: float = Field(alias="inputCostPerKTokens", ge=0.0)
    output_cost_per_k_tokens: float = Field(alias="outputCostPerKTokens", ge=0.0)
    max_context_tokens: int = Field(alias="maxContextTokens", ge=1)
    typical_latency_ms: int = Field(default=1000, alias="typicalLatencyMs", ge=0)

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (prompt_tokens / 1000) * self.input_cost_per_k_tokens + (
            completion_tokens / 1000
        ) * self.output_cost_per_k_tokens


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    model_id: str = Field(alias="modelId", min_length=1)
    prompt_text: str = Field(alias="promptText")
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_output_tokens: int = Field(default=1024, alias="maxOutputTokens", ge=1)
    top_p: float = Field(default=1.0, alias="topP", ge=0.0, le=1.0)
    stop_sequences: tuple[str, ...] = Field(default=(), alias="stopSequences")
    streaming: bool = False


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _derive_total(cls, data):
        # total is always derived, whatever the vendor reported
        if isinstance(data, dict):
            data = dict(data)
            data["total_tokens"] = data.get("prompt_tokens", 0) + data.get(
                "completion_tokens", 0
            )
        return data

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> TokenUsage:
        return cls(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)


class GenerationResult(BaseModel):
    """
    Terminal outcome of one generation.

    Failed runs carry ``error`` and an empty ``text``; callers always get a
    result object back, never an exception.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str = ""
    model_id: str
    provider_id: str = ""
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    duration_ms: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    estimated_cost_usd: float = 0.0
    error: ErrorKind | None = None
    error_message: str | None = None
    from_cache: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class StreamChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str
    sequence: int = Field(ge=0)
    text: str = ""
    is_final: bool = False


class ModelUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    errors: int = 0
    cache_hits: int = 0


class UsageReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_requests: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    error_count: int = 0
    cache_hits: int = 0
    per_model: dict[str, ModelUsage] = Field(default_factory=dict)
    per_provider: dict[str, ModelUsage] = Field(default_factory=dict)
    errors_by_kind: dict[str, int] = Field(default_factory=dict)
