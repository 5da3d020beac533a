"""
Request fingerprinting.

A fingerprint is a SHA-256 over a canonical JSON rendering of the fields
that determine the generated text. ``streaming`` is deliberately absent:
cached results are always the fully assembled text, so a streamed and a
non-streamed request share one entry.
"""

from __future__ import annotations

import hashlib
import json

from ai_bridge.llm_adapter.models import GenerationRequest

_FINGERPRINT_VERSION = "v1"


def canonical_fields(request: GenerationRequest) -> dict:
    # float.hex keeps the exact bit pattern: 0.1 and 0.1000000000000001 differ
    return {
        "model_id": request.model_id,
        "prompt_text": request.prompt_text,
        "temperature": float(request.temperature).hex(),
        "max_output_tokens": request.max_output_tokens,
        "top_p": float(request.top_p).hex(),
        "stop_sequences": list(request.stop_sequences),
    }


def fingerprint(request: GenerationRequest) -> str:
    raw = json.dumps(
        {"v": _FINGERPRINT_VERSION, **canonical_fields(request)},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
