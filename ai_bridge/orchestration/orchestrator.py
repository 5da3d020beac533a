"""
Generation orchestrator -- single entry point for callers.

Each ``submit`` call drives one request through its own state machine:

    CREATED -> CACHE_CHECK -> CACHE_HIT -> COMPLETED
                           -> CACHE_MISS -> DISPATCHING [-> STREAMING]
                                         -> POST_PROCESSING -> COMPLETED
                                         (any step after CACHE_MISS) -> FAILED

``submit`` never raises for request-level failures: every outcome is a
GenerationResult, with ``error`` set and empty ``text`` when the run failed.
Retries belong to the provider adapter; the orchestrator never falls over to
another provider.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Iterable, Mapping

from ai_bridge.llm_adapter.base import ChunkCallback, ProviderAdapter
from ai_bridge.llm_adapter.cache import ResponseCache
from ai_bridge.llm_adapter.errors import (
    ConfigurationError,
    GenerationError,
    RequestCancelledError,
    RequestValidationError,
)
from ai_bridge.llm_adapter.fingerprint import fingerprint
from ai_bridge.llm_adapter.models import (
    GenerationRequest,
    GenerationResult,
    ModelDescriptor,
    StreamChunk,
    TokenUsage,
)
from ai_bridge.llm_adapter.registry import ModelRegistry
from ai_bridge.observability.metrics import cache_lookups
from ai_bridge.orchestration.cancellation import CancellationToken
from ai_bridge.orchestration.hooks import PostProcessHook, apply_hooks
from ai_bridge.orchestration.selection import (
    AUTO_MODEL_ID,
    SelectionPolicy,
    fits_context,
    select_model,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_MAX_IN_FLIGHT = 16

ResultListener = Callable[[GenerationResult], None]


class RequestState(str, Enum):
    CREATED = "created"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    POST_PROCESSING = "post_processing"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.CREATED: frozenset({RequestState.CACHE_CHECK}),
    RequestState.CACHE_CHECK: frozenset({RequestState.CACHE_HIT, RequestState.CACHE_MISS}),
    RequestState.CACHE_HIT: frozenset({RequestState.COMPLETED}),
    RequestState.CACHE_MISS: frozenset({RequestState.DISPATCHING, RequestState.FAILED}),
    RequestState.DISPATCHING: frozenset(
        {RequestState.STREAMING, RequestState.POST_PROCESSING, RequestState.FAILED}
    ),
    RequestState.STREAMING: frozenset({RequestState.POST_PROCESSING, RequestState.FAILED}),
    RequestState.POST_PROCESSING: frozenset({RequestState.COMPLETED, RequestState.FAILED}),
    RequestState.COMPLETED: frozenset(),
    RequestState.FAILED: frozenset(),
}


class IllegalTransition(RuntimeError):
    pass


class RequestRun:
    """Bookkeeping for one request: id, timing and the state trail."""

    def __init__(self, request: GenerationRequest) -> None:
        self.request = request
        self.request_id = str(uuid.uuid4())
        self.started_at = datetime.now(timezone.utc)
        self._start = time.monotonic()
        self.state = RequestState.CREATED
        self.history: list[RequestState] = [RequestState.CREATED]

    def advance(self, state: RequestState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {state.value}")
        logger.debug("request %s: %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def terminal(self) -> bool:
        return self.state in (RequestState.COMPLETED, RequestState.FAILED)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


class Orchestrator:
    """
    Wires registry, cache and adapters together.

    ``adapters`` maps provider id to adapter. ``listeners`` receive every
    terminal result (completed, cached or failed) exactly once.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        adapters: Mapping[str, ProviderAdapter],
        cache: ResponseCache,
        hooks: Iterable[PostProcessHook] = (),
        listeners: Iterable[ResultListener] = (),
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        selection_policy: SelectionPolicy = SelectionPolicy.BALANCED,
    ) -> None:
        self._registry = registry
        self._adapters = dict(adapters)
        self._cache = cache
        self._hooks = list(hooks)
        self._listeners = list(listeners)
        self._cache_ttl = cache_ttl_seconds
        self._gate = asyncio.Semaphore(max_in_flight)
        self._selection_policy = selection_policy

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def adapters(self) -> Mapping[str, ProviderAdapter]:
        return dict(self._adapters)

    def add_listener(self, listener: ResultListener) -> None:
        self._listeners.append(listener)

    async def submit(
        self,
        request: GenerationRequest,
        on_chunk: ChunkCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationResult:
        run = RequestRun(request)
        run.advance(RequestState.CACHE_CHECK)
        key = fingerprint(request)

        cached = self._cache.get(key)
        if cached is not None:
            cache_lookups.labels(result="hit").inc()
            run.advance(RequestState.CACHE_HIT)
            return await self._complete_from_cache(run, cached, on_chunk)

        cache_lookups.labels(result="miss").inc()
        run.advance(RequestState.CACHE_MISS)

        descriptor: ModelDescriptor | None = None
        try:
            descriptor, adapter = self._resolve(request)
            if cancel_token is not None and cancel_token.cancelled:
                raise RequestCancelledError(cancel_token.reason or "Request cancelled")

            run.advance(RequestState.DISPATCHING)
            dispatched = request
            if request.model_id != descriptor.id:
                dispatched = request.model_copy(update={"model_id": descriptor.id})

            raw = await self._await_cancellable(
                self._dispatch(run, adapter, dispatched, on_chunk, cancel_token),
                cancel_token,
            )

            run.advance(RequestState.POST_PROCESSING)
            text = apply_hooks(raw.text, self._hooks)
        except GenerationError as exc:
            return self._fail(run, exc, descriptor)

        usage = raw.token_usage
        result = GenerationResult(
            request_id=run.request_id,
            text=text,
            model_id=descriptor.id,
            provider_id=descriptor.provider_id,
            started_at=run.started_at,
            duration_ms=run.elapsed_ms(),
            token_usage=TokenUsage.of(usage.prompt_tokens, usage.completion_tokens),
            estimated_cost_usd=descriptor.estimate_cost(
                usage.prompt_tokens, usage.completion_tokens
            ),
            attempts=raw.attempts,
        )

        # a token cancelled after the provider returned still wins: aborted
        # runs are never cached
        if cancel_token is not None and cancel_token.cancelled:
            reason = cancel_token.reason or "Request cancelled"
            return self._fail(run, RequestCancelledError(reason), descriptor)

        self._cache.put(key, result, self._cache_ttl)
        run.advance(RequestState.COMPLETED)
        logger.info(
            "Generation %s completed: model=%s tokens=%d cost=%.6f attempts=%d in %dms",
            run.request_id,
            result.model_id,
            result.token_usage.total_tokens,
            result.estimated_cost_usd,
            result.attempts,
            result.duration_ms,
        )
        self._publish(result)
        return result

    def _resolve(self, request: GenerationRequest) -> tuple[ModelDescriptor, ProviderAdapter]:
        if request.model_id == AUTO_MODEL_ID and AUTO_MODEL_ID not in self._registry:
            candidates = [
                d
                for d in self._registry
                if d.provider_id in self._adapters
                and self._adapters[d.provider_id].has_credential
            ]
            descriptor = select_model(request, candidates, self._selection_policy)
            logger.info(
                "Auto-selected model %s (policy=%s)",
                descriptor.id,
                self._selection_policy.value,
            )
        else:
            descriptor = self._registry.resolve(request.model_id)

        adapter = self._adapters.get(descriptor.provider_id)
        if adapter is None:
            raise ConfigurationError(
                f"No adapter configured for provider '{descriptor.provider_id}'"
            )
        if not fits_context(request, descriptor):
            raise RequestValidationError(
                f"Prompt plus output budget exceeds the {descriptor.max_context_tokens}"
                f"-token context window of {descriptor.id}"
            )
        return descriptor, adapter

    async def _dispatch(
        self,
        run: RequestRun,
        adapter: ProviderAdapter,
        request: GenerationRequest,
        on_chunk: ChunkCallback | None,
        cancel_token: CancellationToken | None,
    ) -> GenerationResult:
        async with self._gate:
            if not request.streaming:
                return await adapter.generate(request, request_id=run.request_id)

            async def relay(chunk: StreamChunk) -> None:
                if cancel_token is not None and cancel_token.cancelled:
                    return
                if run.state is RequestState.DISPATCHING:
                    run.advance(RequestState.STREAMING)
                if on_chunk is not None:
                    outcome = on_chunk(chunk)
                    if asyncio.iscoroutine(outcome):
                        await outcome

            return await adapter.generate_stream(
                request, relay, request_id=run.request_id
            )

    async def _await_cancellable(
        self,
        work: Awaitable[GenerationResult],
        cancel_token: CancellationToken | None,
    ) -> GenerationResult:
        if cancel_token is None:
            return await work

        task = asyncio.ensure_future(work)
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done() and not waiter.done():
                # the caller itself was cancelled
                task.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestCancelledError(cancel_token.reason or "Request cancelled")

    async def _complete_from_cache(
        self,
        run: RequestRun,
        cached: GenerationResult,
        on_chunk: ChunkCallback | None,
    ) -> GenerationResult:
        result = cached.model_copy(
            update={
                "request_id": run.request_id,
                "started_at": run.started_at,
                "duration_ms": run.elapsed_ms(),
                "from_cache": True,
                "attempts": 0,
            }
        )
        if run.request.streaming and on_chunk is not None:
            for chunk in (
                StreamChunk(request_id=run.request_id, sequence=0, text=result.text),
                StreamChunk(request_id=run.request_id, sequence=1, is_final=True),
            ):
                outcome = on_chunk(chunk)
                if asyncio.iscoroutine(outcome):
                    await outcome

        run.advance(RequestState.COMPLETED)
        logger.info("Generation %s served from cache (model=%s)", run.request_id, result.model_id)
        self._publish(result)
        return result

    def _fail(
        self,
        run: RequestRun,
        exc: GenerationError,
        descriptor: ModelDescriptor | None,
    ) -> GenerationResult:
        run.advance(RequestState.FAILED)
        result = GenerationResult(
            request_id=run.request_id,
            text="",
            model_id=descriptor.id if descriptor else run.request.model_id,
            provider_id=descriptor.provider_id if descriptor else "",
            started_at=run.started_at,
            duration_ms=run.elapsed_ms(),
            error=exc.kind,
            error_message=str(exc),
            attempts=exc.attempts,
        )
        logger.warning(
            "Generation %s failed (%s): %s",
            run.request_id,
            exc.kind.value,
            exc,
        )
        self._publish(result)
        return result

    def _publish(self, result: GenerationResult) -> None:
        for listener in self._listeners:
            try:
                listener(result)
            except Exception:
                logger.exception("Result listener %r failed", listener)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
