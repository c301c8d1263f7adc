import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Settings:
    openai_api_key: Optional[str]
    model_name: str
    temperature: float
    request_timeout: float
    max_retries: int
    history_window: int
    font_dir: Optional[Path]
    log_level: str


def _float(name: str, default: float) -> float:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {v!r}")


def _int(name: str, default: int) -> int:
    v = os.getenv(name)
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {v!r}")


def load_settings() -> Settings:
    # Pick up a local .env (e.g. OPENAI_API_KEY=sk-...) before reading.
    load_dotenv()

    font_dir = os.getenv("FONT_DIR")
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        model_name=os.getenv("MODEL_NAME", "gpt-4o-mini"),
        temperature=_float("TEMPERATURE", 0.7),
        request_timeout=_float("REQUEST_TIMEOUT", 30.0),
        max_retries=_int("MAX_RETRIES", 1),
        history_window=_int("HISTORY_WINDOW", 6),
        font_dir=Path(font_dir) if font_dir else None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
