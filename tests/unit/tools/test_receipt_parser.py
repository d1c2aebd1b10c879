"""
Unit tests for receipt_parser.py.

Tests:
- Payload validation before any model call
- Model output parsing and schema checks
- Two-tier fallback (mini -> full)
- Failure when both tiers fail
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from expense_capture.errors import ImageTooLarge, InvalidImageFormat, ReceiptParsingFailed
from expense_capture.prompts.receipt_parsing import build_receipt_messages
from expense_capture.schemas.extraction import ReceiptParseRequest
from expense_capture.tools.extraction.receipt_parser import (
    ReceiptParser,
    estimate_decoded_size,
    parse_model_output,
    validate_image_payload,
)

IMAGE = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD"

VALID_OUTPUT = json.dumps({
    "vendor": "Blue Bottle Coffee",
    "date_iso": "2024-03-14",
    "currency": "usd",
    "amount": 18.75,
    "confidence": 0.92,
})


class FakeModels:
    """LLM factory returning one scripted chain per model name."""

    def __init__(self, outputs: dict):
        self.outputs = outputs
        self.calls: list[str] = []
        self.messages: dict[str, list] = {}

    def __call__(self, model: str):
        llm = MagicMock()
        chain = MagicMock()
        outcome = self.outputs[model]

        async def ainvoke(messages):
            self.calls.append(model)
            self.messages[model] = messages
            if isinstance(outcome, Exception):
                raise outcome
            return AIMessage(content=outcome)

        chain.ainvoke = AsyncMock(side_effect=ainvoke)
        llm.bind.return_value = chain
        return llm


@pytest.fixture
def request_body():
    return ReceiptParseRequest(image_b64=IMAGE, locale_hint="en-US", currency_hint="USD")


# ─────────────────────────────────────────────────────────────────────────────
# Payload Validation
# ─────────────────────────────────────────────────────────────────────────────


class TestValidateImagePayload:
    """Tests for data URL and size checks."""

    def test_accepts_image_data_url(self):
        assert validate_image_payload(IMAGE, max_bytes=1024) == IMAGE

    @pytest.mark.parametrize("payload", [
        None,
        "",
        "/9j/4AAQSkZJRg",
        "data:application/pdf;base64,JVBERi0x",
        12345,
    ])
    def test_rejects_non_image_payloads(self, payload):
        with pytest.raises(InvalidImageFormat):
            validate_image_payload(payload, max_bytes=1024)

    def test_rejects_oversized_payload(self):
        payload = "data:image/png;base64," + "A" * 2000
        with pytest.raises(ImageTooLarge):
            validate_image_payload(payload, max_bytes=1000)

    def test_size_estimate_uses_base64_ratio(self):
        assert estimate_decoded_size("A" * 4) == 3
        assert estimate_decoded_size("A" * 5) == 4

    def test_limit_is_inclusive(self):
        payload = "data:image/" + "A" * 29  # 40 chars -> 30 bytes
        assert validate_image_payload(payload, max_bytes=30) == payload


# ─────────────────────────────────────────────────────────────────────────────
# Model Output Parsing
# ─────────────────────────────────────────────────────────────────────────────


class TestParseModelOutput:
    """Tests for schema checks on model responses."""

    def test_valid_output(self):
        fields = parse_model_output(VALID_OUTPUT)
        assert fields.amount == 18.75
        assert fields.currency == "USD"
        assert fields.vendor == "Blue Bottle Coffee"

    def test_nullable_fields(self):
        fields = parse_model_output('{"vendor": null, "date_iso": null, "currency": null, "amount": 5, "confidence": 0.4}')
        assert fields.vendor is None
        assert fields.amount == 5

    def test_missing_amount_is_invalid(self):
        with pytest.raises(ValidationError):
            parse_model_output('{"vendor": "Shop", "confidence": 0.8}')

    def test_string_amount_is_invalid(self):
        with pytest.raises(ValidationError):
            parse_model_output('{"amount": "12.00", "confidence": 0.8}')

    def test_missing_confidence_is_invalid(self):
        with pytest.raises(ValidationError):
            parse_model_output('{"amount": 12.0}')

    @pytest.mark.parametrize("content", [None, "", "   ", "[1, 2]"])
    def test_empty_or_non_object_content(self, content):
        with pytest.raises(ValueError):
            parse_model_output(content)

    def test_malformed_json(self):
        with pytest.raises(json.JSONDecodeError):
            parse_model_output("{not json")


# ─────────────────────────────────────────────────────────────────────────────
# Prompt
# ─────────────────────────────────────────────────────────────────────────────


class TestReceiptMessages:
    """Tests for the multimodal prompt."""

    def test_hints_are_embedded(self):
        system, human = build_receipt_messages(IMAGE, locale_hint="de-DE", currency_hint="EUR")

        assert isinstance(system, SystemMessage)
        assert isinstance(human, HumanMessage)
        text_part, image_part = human.content
        assert "de-DE" in text_part["text"]
        assert "EUR" in text_part["text"]
        assert image_part["image_url"]["url"] == IMAGE

    def test_default_hints(self):
        _, human = build_receipt_messages(IMAGE, locale_hint=None, currency_hint=None)
        assert "en-US" in human.content[0]["text"]
        assert "OTHER" in human.content[0]["text"]


# ─────────────────────────────────────────────────────────────────────────────
# Two-Tier Parsing
# ─────────────────────────────────────────────────────────────────────────────


class TestReceiptParser:
    """Tests for the mini -> full fallback."""

    @pytest.mark.asyncio
    async def test_mini_tier_success(self, test_settings, request_body):
        models = FakeModels({"gpt-4o-mini": VALID_OUTPUT, "gpt-4o": VALID_OUTPUT})
        parser = ReceiptParser(config=test_settings, llm_factory=models)

        result = await parser.parse(request_body)

        assert result.model == "gpt-4o-mini"
        assert result.amount == 18.75
        assert result.date_iso == "2024-03-14"
        assert models.calls == ["gpt-4o-mini"]

    @pytest.mark.asyncio
    async def test_falls_back_when_mini_omits_amount(self, test_settings, request_body):
        models = FakeModels({
            "gpt-4o-mini": '{"vendor": "Shop", "confidence": 0.8}',
            "gpt-4o": VALID_OUTPUT,
        })
        parser = ReceiptParser(config=test_settings, llm_factory=models)

        result = await parser.parse(request_body)

        assert result.model == "gpt-4o"
        assert models.calls == ["gpt-4o-mini", "gpt-4o"]

    @pytest.mark.asyncio
    async def test_falls_back_when_mini_errors(self, test_settings, request_body):
        models = FakeModels({
            "gpt-4o-mini": RuntimeError("upstream 503"),
            "gpt-4o": VALID_OUTPUT,
        })
        parser = ReceiptParser(config=test_settings, llm_factory=models)

        result = await parser.parse(request_body)

        assert result.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_both_tiers_use_identical_prompt(self, test_settings, request_body):
        models = FakeModels({"gpt-4o-mini": "not json", "gpt-4o": VALID_OUTPUT})
        parser = ReceiptParser(config=test_settings, llm_factory=models)

        await parser.parse(request_body)

        assert models.messages["gpt-4o-mini"] == models.messages["gpt-4o"]

    @pytest.mark.asyncio
    async def test_both_tiers_fail(self, test_settings, request_body):
        models = FakeModels({
            "gpt-4o-mini": RuntimeError("boom"),
            "gpt-4o": '{"amount": "lots"}',
        })
        parser = ReceiptParser(config=test_settings, llm_factory=models)

        with pytest.raises(ReceiptParsingFailed):
            await parser.parse(request_body)

        assert models.calls == ["gpt-4o-mini", "gpt-4o"]

    @pytest.mark.asyncio
    async def test_invalid_payload_never_calls_model(self, test_settings):
        models = FakeModels({"gpt-4o-mini": VALID_OUTPUT, "gpt-4o": VALID_OUTPUT})
        parser = ReceiptParser(config=test_settings, llm_factory=models)

        with pytest.raises(InvalidImageFormat):
            await parser.parse(ReceiptParseRequest(image_b64="iVBORw0KGgo="))

        assert models.calls == []

    @pytest.mark.asyncio
    async def test_oversized_payload_never_calls_model(self, test_settings):
        config = test_settings.model_copy(update={"max_image_bytes": 100})
        models = FakeModels({"gpt-4o-mini": VALID_OUTPUT, "gpt-4o": VALID_OUTPUT})
        parser = ReceiptParser(config=config, llm_factory=models)

        with pytest.raises(ImageTooLarge):
            await parser.parse(ReceiptParseRequest(image_b64="data:image/png;base64," + "A" * 400))

        assert models.calls == []

    def test_json_mode_is_requested(self, test_settings):
        factory = MagicMock()
        parser = ReceiptParser(config=test_settings, llm_factory=factory)

        parser._get_chain("gpt-4o-mini")

        factory.assert_called_once_with("gpt-4o-mini")
        factory.return_value.bind.assert_called_once_with(response_format={"type": "json_object"})
