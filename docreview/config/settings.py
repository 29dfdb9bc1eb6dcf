from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_FILES_DIR = BASE_DIR.parent / "files"
DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_STORE_FILENAME = "review_store.json"
DEFAULT_LOG_DIRNAME = "logs"


@dataclass(frozen=True)
class Settings:
    """Application configuration bundled in a single object."""

    openai_api_key: str
    openai_base_url: Optional[str]
    files_root: Path
    llm_model: str = DEFAULT_LLM_MODEL
    temperature: float = 0.2
    max_items_per_category: int = 3
    max_categories: int = 20
    extraction_max_attempts: int = 5
    evaluation_max_attempts: int = 3
    extraction_concurrency: int = 4
    max_question_rounds: int = 3
    store_filename: str = DEFAULT_STORE_FILENAME
    log_dir_override: Optional[Path] = None

    @property
    def store_path(self) -> Path:
        return self.files_root / self.store_filename

    @property
    def log_dir(self) -> Path:
        return self.log_dir_override or self.files_root / DEFAULT_LOG_DIRNAME


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache configuration from environment variables.

    Raises:
        ValueError: if a required key (OPENAI_API_KEY) is missing.
    """
    load_dotenv()

    openai_api_key = os.getenv("OPENAI_API_KEY")
    if not openai_api_key:
        raise ValueError(
            "OPENAI_API_KEY is not set; export it or add it to a .env file"
        )

    files_root = Path(os.getenv("DOCREVIEW_FILES_ROOT", DEFAULT_FILES_DIR)).expanduser()
    log_dir = os.getenv("DOCREVIEW_LOG_DIR", "").strip()

    return Settings(
        openai_api_key=openai_api_key,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        files_root=files_root,
        llm_model=os.getenv("DOCREVIEW_LLM_MODEL", "").strip() or DEFAULT_LLM_MODEL,
        temperature=_float_from_env("DOCREVIEW_TEMPERATURE", 0.2),
        max_items_per_category=_int_from_env("DOCREVIEW_MAX_ITEMS_PER_CATEGORY", 3),
        max_categories=_int_from_env("DOCREVIEW_MAX_CATEGORIES", 20),
        extraction_max_attempts=_int_from_env("DOCREVIEW_EXTRACTION_MAX_ATTEMPTS", 5),
        evaluation_max_attempts=_int_from_env("DOCREVIEW_EVALUATION_MAX_ATTEMPTS", 3),
        extraction_concurrency=_int_from_env("DOCREVIEW_EXTRACTION_CONCURRENCY", 4),
        max_question_rounds=_int_from_env("DOCREVIEW_MAX_QUESTION_ROUNDS", 3),
        log_dir_override=Path(log_dir).expanduser() if log_dir else None,
    )


__all__ = ["Settings", "get_settings"]
