"""
Gateway Service -- HTTP and WebSocket front door for the generation bridge.

Responsibilities:
1. POST /api/generate -- run one generation; JSON result, or an SSE stream
   of chunks followed by the result when ``streaming`` is set
2. WebSocket /ws/generate -- several concurrent generations per socket,
   each addressed by a client ``ref`` and cancellable with
   ``{"type": "cancel", "ref": ...}``
3. GET /api/models -- registry contents plus provider availability
4. GET /api/usage -- UsageTracker snapshot (POST /api/usage/reset clears it)
5. GET /health, GET /metrics

Run with ``uvicorn services.gateway_service.main:app`` or ``python -m
services.gateway_service.main``.

Failed generations are still results: the body carries ``error`` and the
HTTP status reflects its kind.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from ai_bridge.config import BridgeConfig
from ai_bridge.llm_adapter.factory import build_orchestrator
from ai_bridge.llm_adapter.models import ErrorKind, GenerationRequest, StreamChunk
from ai_bridge.logging.logger import secrets_from_env, setup_logging
from ai_bridge.observability.metrics import metrics_response
from ai_bridge.orchestration.cancellation import CancellationToken
from ai_bridge.orchestration.orchestrator import Orchestrator
from ai_bridge.orchestration.usage import UsageTracker
from services.gateway_service.config import GatewayConfig
from services.gateway_service.ws_manager import ConnectionManager

SERVICE_NAME = "gateway_service"
orchestrator: Orchestrator | None = None
tracker = UsageTracker()
cfg = GatewayConfig.from_env()
manager = ConnectionManager()

_STATUS_BY_ERROR: dict[ErrorKind, int] = {
    ErrorKind.UNKNOWN_MODEL: 404,
    ErrorKind.VALIDATION: 422,
    ErrorKind.MISSING_CREDENTIAL: 503,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.TRANSIENT_PROVIDER: 502,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.CANCELLED: 499,
}


@asynccontextmanager
async def lifespan(application: FastAPI):
    global orchestrator
    bridge_cfg = BridgeConfig.from_env()
    logger = setup_logging(SERVICE_NAME, secrets=bridge_cfg.secrets() + secrets_from_env())

    orchestrator = build_orchestrator(bridge_cfg, tracker=tracker)
    logger.info(
        "Gateway Service ready (providers=%s, policy=%s)",
        ",".join(bridge_cfg.enabled_providers),
        bridge_cfg.selection_policy.value,
    )
    yield

    logger.info("Shutting down")
    await orchestrator.aclose()
    orchestrator = None


app = FastAPI(
    title="AI Bridge - Gateway Service",
    version="0.1.0",
    description="Provider-agnostic LLM generation over HTTP and WebSocket",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(cfg.allowed_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(SERVICE_NAME)


@app.get("/health")
async def health():
    return {
        "status": "ok" if orchestrator is not None else "starting",
        "service": SERVICE_NAME,
        "models": len(orchestrator.registry) if orchestrator else 0,
        "ws_connections": manager.connection_count,
        "ws_in_flight": manager.in_flight,
    }


@app.get("/metrics")
async def metrics():
    return metrics_response()


@app.get("/api/models")
async def list_models():
    adapters = orchestrator.adapters
    models = []
    for descriptor in orchestrator.registry:
        adapter = adapters.get(descriptor.provider_id)
        models.append(
            {
                **descriptor.model_dump(by_alias=True),
                "available": adapter is not None and adapter.has_credential,
            }
        )
    return {"models": models, "count": len(models)}


@app.get("/api/usage")
async def get_usage():
    return tracker.snapshot().model_dump(mode="json")


@app.post("/api/usage/reset")
async def reset_usage():
    tracker.reset()
    return {"status": "reset"}


@app.post("/api/generate")
async def generate(request: GenerationRequest):
    if request.streaming:
        return StreamingResponse(
            _sse_generation(request), media_type="text/event-stream"
        )

    result = await orchestrator.submit(request)
    status = 200 if result.ok else _STATUS_BY_ERROR.get(result.error, 500)
    return JSONResponse(content=result.model_dump(mode="json"), status_code=status)


def _sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


async def _sse_generation(request: GenerationRequest) -> AsyncIterator[str]:
    """Relay chunks as SSE events; a client that goes away cancels the run."""
    queue: asyncio.Queue[StreamChunk | None] = asyncio.Queue()
    token = CancellationToken()
    task = asyncio.create_task(
        orchestrator.submit(request, on_chunk=queue.put, cancel_token=token)
    )
    task.add_done_callback(lambda _: queue.put_nowait(None))
    try:
        while True:
            chunk = await queue.get()
            if chunk is None:
                break
            yield _sse("chunk", chunk.model_dump_json())
        yield _sse("result", task.result().model_dump_json())
    finally:
        if not task.done():
            token.cancel("client disconnected")
            await asyncio.gather(task, return_exceptions=True)


@app.websocket("/ws/generate")
async def websocket_generate(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                await manager.send(websocket, {"type": "error", "error": "message must be an object"})
                continue
            await _handle_ws_message(websocket, message)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        await manager.disconnect(websocket)


async def _handle_ws_message(websocket: WebSocket, message: dict[str, Any]) -> None:
    kind = message.get("type")
    ref = str(message.get("ref") or uuid.uuid4())

    if kind == "generate":
        try:
            request = GenerationRequest.model_validate(message.get("request") or {})
        except ValidationError as exc:
            await manager.send(
                websocket,
                {
                    "type": "error",
                    "ref": ref,
                    "error": ErrorKind.VALIDATION.value,
                    "detail": json.loads(exc.json(include_url=False)),
                },
            )
            return
        if manager.is_active(websocket, ref):
            await manager.send(
                websocket,
                {"type": "error", "ref": ref, "error": f"ref {ref} is already in flight"},
            )
            return
        token = CancellationToken()
        task = asyncio.create_task(_run_ws_generation(websocket, ref, request, token))
        manager.start(websocket, ref, token, task)
        await manager.send(websocket, {"type": "accepted", "ref": ref})

    elif kind == "cancel":
        if manager.cancel(websocket, ref):
            logger.info("WebSocket generation %s cancelled by client", ref)
        else:
            await manager.send(
                websocket,
                {"type": "error", "ref": ref, "error": f"no generation in flight for ref {ref}"},
            )

    else:
        await manager.send(
            websocket,
            {"type": "error", "ref": ref, "error": f"unsupported message type {kind!r}"},
        )


async def _run_ws_generation(
    websocket: WebSocket,
    ref: str,
    request: GenerationRequest,
    token: CancellationToken,
) -> None:
    async def forward(chunk: StreamChunk) -> None:
        await manager.send(
            websocket, {"type": "chunk", "ref": ref, "chunk": chunk.model_dump(mode="json")}
        )

    result = await orchestrator.submit(request, on_chunk=forward, cancel_token=token)
    await manager.send(
        websocket, {"type": "result", "ref": ref, "result": result.model_dump(mode="json")}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.gateway_service.main:app",
        host=cfg.host,
        port=cfg.port,
        log_level=cfg.log_level.lower(),
    )
