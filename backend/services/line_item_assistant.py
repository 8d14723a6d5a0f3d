"""Free-text to invoice line items.

The assistant turns a dispatcher's note ("two airport runs from Vanak,
one hour waiting") into structured line items:
- a provider returns raw JSON text for a prompt
- the assistant parses and normalizes that JSON into ``LineItem`` records
- provider and parsing failures surface as ``LineItemAssistantError``
"""

from __future__ import annotations

import json
import logging
import os
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Protocol
from uuid import uuid4

from openai import OpenAI

from taxi_ledger.config import AssistantSettings
from taxi_ledger.models import LineItem

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a helpful accounting assistant for a transportation and taxi company "
    "that extracts structured invoice data from unstructured text."
)

PROMPT_TEMPLATE = (
    "Extract invoice line items for a taxi or airport transfer service from this text. "
    "Identify routes (origin to destination), car types, waiting times, or extra services. "
    "If no specific quantity is given, assume 1. If no price is given, estimate a reasonable "
    "placeholder value in Rials. Answer with a JSON object of the form "
    '{{"items": [{{"description": str, "quantity": number, "rate": number}}]}}. '
    'Text: "{text}"'
)


class LineItemAssistantError(RuntimeError):
    """Raised when line items cannot be produced for a prompt."""


# -----------------------------
# Provider abstraction
# -----------------------------


class LineItemProvider(Protocol):
    def complete(self, prompt: str) -> str:
        ...


class OpenAILineItemProvider:
    def __init__(self, settings: Optional[AssistantSettings] = None) -> None:
        self.settings = settings or AssistantSettings()

    def complete(self, prompt: str) -> str:
        api_key = os.getenv(self.settings.api_key_env)
        if not api_key:
            logger.warning("Line item assistant called without %s set", self.settings.api_key_env)
            raise LineItemAssistantError(f"API key is not configured. Set {self.settings.api_key_env}.")

        client = OpenAI(api_key=api_key)
        response = client.chat.completions.create(
            model=self.settings.model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": PROMPT_TEMPLATE.format(text=prompt)},
            ],
        )
        return response.choices[0].message.content or ""


class MockLineItemProvider:
    """Provider useful for tests and local development."""

    def __init__(self, text: str):
        self._text = text

    def complete(self, prompt: str) -> str:
        _ = prompt
        return self._text


# -----------------------------
# Parsing
# -----------------------------


def _to_decimal(value: Any, default: Decimal) -> Decimal:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise LineItemAssistantError(f"Expected a number, got {value!r}")
    try:
        return Decimal(str(value).replace(",", ""))
    except InvalidOperation as exc:
        raise LineItemAssistantError(f"Expected a number, got {value!r}") from exc


def parse_line_items(raw_text: str) -> List[LineItem]:
    """Accepts a bare JSON array or an object wrapping it under ``items``."""
    if not raw_text.strip():
        return []
    try:
        loaded = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise LineItemAssistantError(f"Assistant returned invalid JSON: {exc}") from exc

    if isinstance(loaded, dict):
        loaded = loaded.get("items", [])
    if not isinstance(loaded, list):
        raise LineItemAssistantError("Assistant output must be a list of line items")

    items: List[LineItem] = []
    for entry in loaded:
        if not isinstance(entry, dict):
            raise LineItemAssistantError(f"Line item must be an object, got {entry!r}")
        items.append(
            LineItem(
                item_id=uuid4().hex[:9],
                description=str(entry.get("description") or "").strip(),
                quantity=_to_decimal(entry.get("quantity"), Decimal("1")),
                rate=_to_decimal(entry.get("rate"), Decimal("0")),
            )
        )
    return items


class LineItemAssistant:
    def __init__(self, provider: LineItemProvider) -> None:
        self.provider = provider

    def generate(self, prompt: str) -> List[LineItem]:
        if not prompt.strip():
            return []
        try:
            raw_text = self.provider.complete(prompt)
        except LineItemAssistantError:
            raise
        except Exception as exc:
            logger.error("Line item provider failed: %s", exc)
            raise LineItemAssistantError(f"Line item provider failed: {exc}") from exc

        items = parse_line_items(raw_text)
        logger.info("Assistant produced %d line item(s)", len(items))
        return items
