"""Abstract base class that all provider adapters must implement."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Union

from ai_bridge.llm_adapter.errors import (
    GenerationError,
    MissingCredentialError,
    ProviderTimeoutError,
    TransientProviderError,
)
from ai_bridge.llm_adapter.models import (
    GenerationRequest,
    GenerationResult,
    ModelDescriptor,
    StreamChunk,
    TokenUsage,
)
from ai_bridge.llm_adapter.registry import ModelRegistry

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[StreamChunk], Union[None, Awaitable[None]]]

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_BACKOFF_BASE_MS = 500


def estimate_tokens(text: str) -> int:
    """Approximate token count (~4 characters per token)."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / 4))


@dataclass
class ProviderReply:
    """Normalised non-streaming vendor reply."""

    text: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


@dataclass
class TransportChunk:
    """
    One piece of streamed output as the transport delivered it.

    - index: transport-assigned position, or None when the transport is
      ordered and carries no position
    - prompt_tokens / completion_tokens: usage, when the vendor reports it
      (usually on the last event only)
    """

    text: str = ""
    index: int | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class _ChunkReorderer:
    """Releases transport chunks in index order, holding early arrivals back."""

    def __init__(self) -> None:
        self._next = 0
        self._auto = 0
        self._pending: dict[int, str] = {}

    def push(self, chunk: TransportChunk) -> list[str]:
        index = chunk.index
        if index is None:
            index = max(self._auto, self._next)
        self._auto = max(self._auto, index + 1)

        if index < self._next or index in self._pending:
            logger.debug("Dropping duplicate stream chunk at index %d", index)
            return []

        self._pending[index] = chunk.text
        released: list[str] = []
        while self._next in self._pending:
            released.append(self._pending.pop(self._next))
            self._next += 1
        return released

    def drain(self) -> list[str]:
        """Flush whatever is still held back (gaps in the transport)."""
        if self._pending:
            logger.warning(
                "Stream ended with %d chunk(s) after a gap; flushing in order",
                len(self._pending),
            )
        released = [self._pending[i] for i in sorted(self._pending)]
        self._pending.clear()
        return released


class ProviderAdapter(ABC):
    """
    Contract for provider adapters.

    Subclasses implement the raw vendor calls (``_complete`` and ``_stream``)
    and ``_classify``; this base class owns everything that must behave the
    same across vendors:

    - credential pre-flight (``MissingCredentialError`` before any I/O)
    - up to ``max_retries`` attempts on transient failures with exponential
      backoff and jitter: ``base * 2**attempt + uniform(0, base)``
    - a hard timeout per attempt
    - in-order chunk delivery, with a terminal ``is_final`` chunk
    """

    requires_credential: bool = True

    def __init__(
        self,
        provider_id: str,
        registry: ModelRegistry,
        api_key: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS,
        rng: random.Random | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.provider_id = provider_id
        self._registry = registry
        self._api_key = api_key or None
        self.max_retries = max_retries
        self.timeout_ms = timeout_ms
        self.backoff_base_ms = backoff_base_ms
        self._rng = rng or random.Random()

    @property
    def has_credential(self) -> bool:
        return self._api_key is not None or not self.requires_credential

    @abstractmethod
    async def _complete(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> ProviderReply:
        """Issue one non-streaming vendor call."""

    @abstractmethod
    def _stream(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> AsyncIterator[TransportChunk]:
        """Issue one streaming vendor call, yielding transport chunks."""

    def _classify(self, exc: Exception) -> GenerationError:
        """Map a vendor/transport exception onto the error taxonomy."""
        return TransientProviderError(f"{type(exc).__name__}: {exc}")

    async def generate(
        self, request: GenerationRequest, *, request_id: str | None = None
    ) -> GenerationResult:
        descriptor = self._preflight(request)
        request_id = request_id or str(uuid.uuid4())
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        reply, attempts = await self._with_retries(
            lambda: self._complete(request, descriptor)
        )
        return self._build_result(
            request_id,
            descriptor,
            reply.text,
            request.prompt_text,
            reply.prompt_tokens,
            reply.completion_tokens,
            started_at,
            start,
            attempts,
        )

    async def generate_stream(
        self,
        request: GenerationRequest,
        on_chunk: ChunkCallback,
        *,
        request_id: str | None = None,
    ) -> GenerationResult:
        descriptor = self._preflight(request)
        request_id = request_id or str(uuid.uuid4())
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        emitted = 0
        final_sent = False

        async def emit(text: str, is_final: bool = False) -> None:
            nonlocal emitted, final_sent
            chunk = StreamChunk(
                request_id=request_id,
                sequence=emitted,
                text=text,
                is_final=is_final,
            )
            emitted += 1
            final_sent = final_sent or is_final
            try:
                outcome = on_chunk(chunk)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception:
                logger.exception(
                    "Stream subscriber failed on chunk %d of %s",
                    chunk.sequence,
                    request_id,
                )

        async def attempt() -> ProviderReply:
            reorderer = _ChunkReorderer()
            parts: list[str] = []
            prompt_tokens: int | None = None
            completion_tokens: int | None = None

            async for piece in self._stream(request, descriptor):
                if piece.prompt_tokens is not None:
                    prompt_tokens = piece.prompt_tokens
                if piece.completion_tokens is not None:
                    completion_tokens = piece.completion_tokens
                if not piece.text and piece.index is None:
                    continue
                for text in reorderer.push(piece):
                    if text:
                        parts.append(text)
                        await emit(text)

            for text in reorderer.drain():
                if text:
                    parts.append(text)
                    await emit(text)
            await emit("", is_final=True)
            return ProviderReply("".join(parts), prompt_tokens, completion_tokens)

        # once the subscriber has seen output, a retry would duplicate it
        try:
            reply, attempts = await self._with_retries(
                attempt, can_retry=lambda: emitted == 0
            )
        except GenerationError:
            # close the stream the subscriber already started reading
            if emitted and not final_sent:
                await emit("", is_final=True)
            raise
        return self._build_result(
            request_id,
            descriptor,
            reply.text,
            request.prompt_text,
            reply.prompt_tokens,
            reply.completion_tokens,
            started_at,
            start,
            attempts,
        )

    async def aclose(self) -> None:
        """Release transport resources held by the adapter."""

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        base = self.backoff_base_ms / 1000
        return base * (2 ** attempt) + self._rng.uniform(0, base)

    def _preflight(self, request: GenerationRequest) -> ModelDescriptor:
        if not self.has_credential:
            raise MissingCredentialError(self.provider_id)
        return self._registry.resolve(request.model_id)

    async def _with_retries(
        self,
        call: Callable[[], Awaitable[ProviderReply]],
        can_retry: Callable[[], bool] = lambda: True,
    ) -> tuple[ProviderReply, int]:
        timeout = self.timeout_ms / 1000 if self.timeout_ms > 0 else None

        for attempt in range(self.max_retries):
            is_last = attempt == self.max_retries - 1
            try:
                reply = await asyncio.wait_for(call(), timeout=timeout)
                return reply, attempt + 1
            except asyncio.TimeoutError:
                error: GenerationError = ProviderTimeoutError(
                    f"{self.provider_id} attempt {attempt + 1} exceeded {self.timeout_ms}ms"
                )
            except GenerationError as exc:
                error = exc
            except Exception as exc:
                error = self._classify(exc)
                error.__cause__ = exc

            error.attempts = attempt + 1
            if not error.transient or is_last or not can_retry():
                logger.warning(
                    "%s call failed after %d attempt(s): %s",
                    self.provider_id,
                    attempt + 1,
                    error,
                )
                raise error

            delay = self.backoff_delay(attempt)
            logger.info(
                "%s attempt %d failed (%s); retrying in %.2fs",
                self.provider_id,
                attempt + 1,
                error,
                delay,
            )
            await asyncio.sleep(delay)

        raise AssertionError("unreachable")

    def _build_result(
        self,
        request_id: str,
        descriptor: ModelDescriptor,
        text: str,
        prompt_text: str,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        started_at: datetime,
        start: float,
        attempts: int,
    ) -> GenerationResult:
        if prompt_tokens is None:
            prompt_tokens = estimate_tokens(prompt_text)
        if completion_tokens is None:
            completion_tokens = estimate_tokens(text)
        return GenerationResult(
            request_id=request_id,
            text=text,
            model_id=descriptor.id,
            provider_id=self.provider_id,
            started_at=started_at,
            duration_ms=int((time.monotonic() - start) * 1000),
            token_usage=TokenUsage.of(prompt_tokens, completion_tokens),
            estimated_cost_usd=descriptor.estimate_cost(
                prompt_tokens, completion_tokens
            ),
            attempts=attempts,
        )
