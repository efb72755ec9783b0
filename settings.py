from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw.isdigit() else default


@dataclass
class Settings:
    openai_api_key: str
    feedback_model: str = "gpt-4o"
    realtime_model: str = "gpt-4o-mini"
    request_timeout_s: float = 60.0
    debounce_s: float = 2.0
    min_realtime_chars: int = 50
    match_threshold: float = 0.8  # token overlap needed for a fuzzy anchor
    default_tone: str = "conversational"
    max_input_tokens: int = 0  # 0 disables the tiktoken budget check
    documents_dir: str = "data/documents"

    @staticmethod
    def load() -> "Settings":
        # Load .env from the service root (where this file is located)
        root_dir = os.path.dirname(os.path.abspath(__file__))
        load_dotenv(dotenv_path=os.path.join(root_dir, '.env'))
        return Settings(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            feedback_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            realtime_model=os.getenv("OPENAI_REALTIME_MODEL", "gpt-4o-mini"),
            request_timeout_s=_float_env("ANALYSIS_TIMEOUT", 60.0),
            debounce_s=_float_env("REALTIME_DEBOUNCE", 2.0),
            min_realtime_chars=_int_env("REALTIME_MIN_CHARS", 50),
            match_threshold=_float_env("QUOTE_MATCH_THRESHOLD", 0.8),
            default_tone=os.getenv("FEEDBACK_TONE", "conversational"),
            max_input_tokens=_int_env("ANALYSIS_MAX_INPUT_TOKENS", 0),
            documents_dir=os.getenv("DOCUMENTS_DIR", os.path.join(root_dir, "data", "documents")),
        )
