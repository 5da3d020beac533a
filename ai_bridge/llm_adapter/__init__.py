from ai_bridge.llm_adapter.base import ProviderAdapter, estimate_tokens
from ai_bridge.llm_adapter.cache import ResponseCache
from ai_bridge.llm_adapter.errors import (
    ConfigurationError,
    GenerationError,
    MissingCredentialError,
    ProviderTimeoutError,
    RequestCancelledError,
    RequestValidationError,
    TransientProviderError,
    UnknownModelError,
)
from ai_bridge.llm_adapter.fingerprint import fingerprint
from ai_bridge.llm_adapter.mock_provider import MockProvider
from ai_bridge.llm_adapter.models import (
    ErrorKind,
    GenerationRequest,
    GenerationResult,
    ModelDescriptor,
    StreamChunk,
    TokenUsage,
    UsageReport,
)
from ai_bridge.llm_adapter.registry import ModelRegistry

__all__ = [
    "ProviderAdapter",
    "MockProvider",
    "ModelRegistry",
    "ResponseCache",
    "fingerprint",
    "estimate_tokens",
    "ErrorKind",
    "GenerationRequest",
    "GenerationResult",
    "ModelDescriptor",
    "StreamChunk",
    "TokenUsage",
    "UsageReport",
    "GenerationError",
    "UnknownModelError",
    "MissingCredentialError",
    "RequestValidationError",
    "ConfigurationError",
    "TransientProviderError",
    "ProviderTimeoutError",
    "RequestCancelledError",
]
