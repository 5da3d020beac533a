import pytest

from ai_bridge.llm_adapter.errors import ConfigurationError
from ai_bridge.llm_adapter.models import GenerationRequest, ModelDescriptor
from ai_bridge.orchestration.hooks import (
    apply_hooks,
    hooks_by_name,
    strip_control_characters,
    unwrap_code_fence,
)
from ai_bridge.orchestration.selection import SelectionPolicy, fits_context, select_model


def _descriptor(model_id, cost_in, cost_out, latency, context=8000):
    return ModelDescriptor(
        id=model_id,
        provider_id="p",
        input_cost_per_k_tokens=cost_in,
        output_cost_per_k_tokens=cost_out,
        max_context_tokens=context,
        typical_latency_ms=latency,
    )


CANDIDATES = [
    _descriptor("pricey-fast", 0.01, 0.03, 200),
    _descriptor("cheap-slow", 0.0001, 0.0002, 3000),
    _descriptor("middle", 0.001, 0.002, 400),
]

REQUEST = GenerationRequest(model_id="auto", prompt_text="hello there", max_output_tokens=100)


class TestSelectModel:

    def test_cheapest(self):
        assert select_model(REQUEST, CANDIDATES, SelectionPolicy.CHEAPEST).id == "cheap-slow"

    def test_fastest(self):
        assert select_model(REQUEST, CANDIDATES, SelectionPolicy.FASTEST).id == "pricey-fast"

    def test_balanced_prefers_the_compromise(self):
        assert select_model(REQUEST, CANDIDATES, SelectionPolicy.BALANCED).id == "middle"

    def test_ties_break_on_model_id(self):
        twins = [_descriptor("b", 0.001, 0.001, 100), _descriptor("a", 0.001, 0.001, 100)]
        assert select_model(REQUEST, twins, SelectionPolicy.CHEAPEST).id == "a"

    def test_models_that_cannot_fit_are_skipped(self):
        tiny = _descriptor("tiny", 0.0, 0.0, 1, context=50)
        assert not fits_context(REQUEST, tiny)
        assert select_model(REQUEST, CANDIDATES + [tiny], SelectionPolicy.CHEAPEST).id != "tiny"

    def test_no_candidates(self):
        with pytest.raises(ConfigurationError):
            select_model(REQUEST, [])


class TestHooks:

    def test_unwrap_code_fence(self):
        assert unwrap_code_fence("```python\nprint(1)\n```") == "print(1)"
        assert unwrap_code_fence("text ```x``` text") == "text ```x``` text"

    def test_strip_control_characters_keeps_newlines(self):
        assert strip_control_characters("a\x00b\tc\nd\x7f") == "ab\tc\nd"

    def test_hooks_run_in_order(self):
        hooks = hooks_by_name(["unwrap_code_fence", "strip_whitespace"])
        assert apply_hooks("```\n  body  \n```", hooks) == "body"

    def test_unknown_hook_name(self):
        with pytest.raises(ConfigurationError, match="Unknown post-processing hook"):
            hooks_by_name(["shout"])
