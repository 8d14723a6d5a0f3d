from decimal import Decimal

import pytest

from backend.services.line_item_assistant import (
    LineItemAssistant,
    LineItemAssistantError,
    MockLineItemProvider,
    OpenAILineItemProvider,
    parse_line_items,
)
from taxi_ledger.config import AssistantSettings


class FailingProvider:
    def complete(self, prompt: str) -> str:
        raise ConnectionError("upstream timed out")


def test_parses_wrapped_items_with_defaults():
    raw = (
        '{"items": ['
        '{"description": "Airport transfer (Vanak to IKA) - Camry", "quantity": 2, "rate": 9500000},'
        '{"description": "Waiting time", "rate": "2,000,000"},'
        '{"description": "Toll"}'
        "]}"
    )
    items = LineItemAssistant(MockLineItemProvider(raw)).generate("two airport runs, waiting, toll")

    assert [item.description for item in items] == ["Airport transfer (Vanak to IKA) - Camry", "Waiting time", "Toll"]
    assert [item.quantity for item in items] == [Decimal("2"), Decimal("1"), Decimal("1")]
    assert [item.rate for item in items] == [Decimal("9500000"), Decimal("2000000"), Decimal("0")]
    assert len({item.item_id for item in items}) == 3


def test_accepts_bare_array():
    items = parse_line_items('[{"description": "Tehran to Qom", "quantity": 1.5, "rate": 25000000}]')
    assert items[0].quantity == Decimal("1.5")


def test_empty_output_and_prompt_yield_no_items():
    assert LineItemAssistant(MockLineItemProvider("")).generate("anything") == []
    assert LineItemAssistant(MockLineItemProvider("[]")).generate("   ") == []


@pytest.mark.parametrize("raw", ["not json", '{"items": "nope"}', "[1, 2]", '[{"rate": "abc"}]', '[{"quantity": true}]'])
def test_malformed_output_raises(raw):
    with pytest.raises(LineItemAssistantError):
        parse_line_items(raw)


def test_provider_failures_are_wrapped():
    with pytest.raises(LineItemAssistantError, match="upstream timed out"):
        LineItemAssistant(FailingProvider()).generate("airport run")


def test_missing_api_key_is_reported(monkeypatch):
    monkeypatch.delenv("TAXI_TEST_MISSING_KEY", raising=False)
    provider = OpenAILineItemProvider(AssistantSettings(api_key_env="TAXI_TEST_MISSING_KEY"))

    with pytest.raises(LineItemAssistantError, match="TAXI_TEST_MISSING_KEY"):
        LineItemAssistant(provider).generate("airport run")
