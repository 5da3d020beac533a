"""Error taxonomy shared by the registry, the adapters and the orchestrator."""

from __future__ import annotations

from ai_bridge.llm_adapter.models import ErrorKind


class GenerationError(Exception):
    """Base class; ``kind`` is what ends up in ``GenerationResult.error``."""

    kind: ErrorKind = ErrorKind.CONFIGURATION
    transient: bool = False
    attempts: int = 0


class UnknownModelError(GenerationError):
    kind = ErrorKind.UNKNOWN_MODEL

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model '{model_id}'")
        self.model_id = model_id


class MissingCredentialError(GenerationError):
    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"No credential configured for provider '{provider_id}'")
        self.provider_id = provider_id


class RequestValidationError(GenerationError):
    kind = ErrorKind.VALIDATION


class ConfigurationError(GenerationError):
    kind = ErrorKind.CONFIGURATION


class TransientProviderError(GenerationError):
    kind = ErrorKind.TRANSIENT_PROVIDER
    transient = True


class ProviderTimeoutError(GenerationError):
    kind = ErrorKind.TIMEOUT
    transient = True


class RequestCancelledError(GenerationError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message)
