from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import os
from pathlib import Path
from typing import Any, Optional

import yaml

CONFIG_ENV_VAR = "TAXI_LEDGER_CONFIG"


@dataclass(frozen=True)
class AssistantSettings:
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"


@dataclass(frozen=True)
class Settings:
    database_path: str = "taxi_ledger.sqlite3"
    currency: str = "IRR"
    default_tax_rate: Decimal = Decimal("9")
    default_discount_rate: Decimal = Decimal("0")
    log_level: str = "INFO"
    excel_mapping_path: str = "backend/config/excel_mapping.yaml"
    export_dir: str = "exports"
    assistant: AssistantSettings = field(default_factory=AssistantSettings)


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as config_file:
        loaded = yaml.safe_load(config_file) or {}

    if not isinstance(loaded, dict):
        msg = f"Settings file must contain a dictionary at root: {path}"
        raise ValueError(msg)

    return loaded


def load_settings(path: Optional[Path | str] = None) -> Settings:
    """Read settings from YAML; unset keys keep their defaults.

    Without an explicit path the ``TAXI_LEDGER_CONFIG`` environment variable is
    consulted. A missing file yields the defaults.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
    if path is None or not Path(path).exists():
        return Settings()

    raw = _load_yaml(Path(path))
    assistant_raw = raw.pop("assistant", None) or {}
    if not isinstance(assistant_raw, dict):
        raise ValueError("assistant settings must be a mapping")

    unknown = set(raw) - set(Settings.__dataclass_fields__) | (
        set(assistant_raw) - set(AssistantSettings.__dataclass_fields__)
    )
    if unknown:
        raise ValueError(f"Unknown settings keys: {sorted(unknown)}")

    for key in ("default_tax_rate", "default_discount_rate"):
        if key in raw:
            raw[key] = Decimal(str(raw[key]))

    return Settings(assistant=AssistantSettings(**assistant_raw), **raw)
