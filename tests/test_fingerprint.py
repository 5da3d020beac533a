from ai_bridge.llm_adapter.fingerprint import canonical_fields, fingerprint
from ai_bridge.llm_adapter.models import GenerationRequest


def _request(**overrides) -> GenerationRequest:
    fields = {
        "model_id": "model-a",
        "prompt_text": "Summarize the release notes",
        "temperature": 0.2,
        "max_output_tokens": 256,
        "top_p": 0.9,
        "stop_sequences": ("\n\n",),
    }
    fields.update(overrides)
    return GenerationRequest(**fields)


class TestFingerprint:

    def test_identical_requests_share_a_fingerprint(self):
        assert fingerprint(_request()) == fingerprint(_request())

    def test_fingerprint_is_sha256_hex(self):
        fp = fingerprint(_request())
        assert len(fp) == 64
        int(fp, 16)

    def test_alias_and_field_names_are_equivalent(self):
        by_alias = GenerationRequest.model_validate(
            {
                "modelId": "model-a",
                "promptText": "Summarize the release notes",
                "temperature": 0.2,
                "maxOutputTokens": 256,
                "topP": 0.9,
                "stopSequences": ["\n\n"],
            }
        )
        assert fingerprint(by_alias) == fingerprint(_request())

    def test_streaming_flag_does_not_change_fingerprint(self):
        assert fingerprint(_request(streaming=True)) == fingerprint(_request())

    def test_every_generation_parameter_matters(self):
        base = fingerprint(_request())
        variants = [
            _request(model_id="model-b"),
            _request(prompt_text="Summarize the release notes."),
            _request(temperature=0.3),
            _request(max_output_tokens=257),
            _request(top_p=0.95),
            _request(stop_sequences=()),
        ]
        assert all(fingerprint(v) != base for v in variants)

    def test_stop_sequence_order_is_significant(self):
        a = _request(stop_sequences=("A", "B"))
        b = _request(stop_sequences=("B", "A"))
        assert fingerprint(a) != fingerprint(b)

    def test_float_parameters_are_compared_exactly(self):
        a = _request(temperature=0.1)
        b = _request(temperature=0.1000000000000001)
        assert fingerprint(a) != fingerprint(b)

    def test_int_and_float_temperature_agree(self):
        assert fingerprint(_request(temperature=1)) == fingerprint(_request(temperature=1.0))

    def test_canonical_fields_exclude_streaming(self):
        assert "streaming" not in canonical_fields(_request(streaming=True))
