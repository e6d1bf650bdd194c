from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_OWN_TAX_IDS: tuple[str, ...] = ("B70853163",)


def normalize_tax_id(value: str) -> str:
    return re.sub(r"[\-\s]", "", value).upper()


def _parse_float(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from exc


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    own_tax_ids: tuple[str, ...] = DEFAULT_OWN_TAX_IDS
    default_tax_rate: float = 0.21
    known_suppliers_path: str | None = None
    min_text_length: int = 50
    review_completeness_threshold: float = 0.5
    review_queue_dir: str = "review_queue"
    metrics_path: str = "logs/metrics.jsonl"
    extraction_model: str = "gpt-4o"
    openai_api_key: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        own_env = os.getenv("OWN_TAX_IDS", ",".join(DEFAULT_OWN_TAX_IDS))
        own_tax_ids = tuple(normalize_tax_id(v) for v in own_env.split(",") if v.strip())
        if not own_tax_ids:
            raise ValueError("OWN_TAX_IDS must contain at least one tax id")

        default_tax_rate = _parse_float("DEFAULT_TAX_RATE", "0.21")
        if not 0 <= default_tax_rate < 1:
            raise ValueError("DEFAULT_TAX_RATE must be a fraction in [0, 1), e.g. 0.21 or 0.07")

        known_suppliers_path = os.getenv("KNOWN_SUPPLIERS_PATH")
        if known_suppliers_path is not None and not known_suppliers_path.strip():
            known_suppliers_path = None
        if known_suppliers_path and not Path(known_suppliers_path).exists():
            raise ValueError(f"KNOWN_SUPPLIERS_PATH not found: {known_suppliers_path}")

        min_text_length = _parse_int("MIN_TEXT_LENGTH", "50")
        if min_text_length < 0:
            raise ValueError("MIN_TEXT_LENGTH must not be negative")

        threshold = _parse_float("REVIEW_COMPLETENESS_THRESHOLD", "0.5")
        if not 0 <= threshold <= 1:
            raise ValueError("REVIEW_COMPLETENESS_THRESHOLD must be between 0 and 1")

        api_key = os.getenv("OPENAI_API_KEY")

        return cls(
            own_tax_ids=own_tax_ids,
            default_tax_rate=default_tax_rate,
            known_suppliers_path=known_suppliers_path,
            min_text_length=min_text_length,
            review_completeness_threshold=threshold,
            review_queue_dir=os.getenv("REVIEW_QUEUE_DIR", "review_queue"),
            metrics_path=os.getenv("METRICS_PATH", "logs/metrics.jsonl"),
            extraction_model=os.getenv("EXTRACTION_MODEL", "gpt-4o"),
            openai_api_key=api_key.strip() if api_key and api_key.strip() else None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
