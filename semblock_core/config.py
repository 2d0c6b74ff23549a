#!/usr/bin/env python3
from dataclasses import dataclass
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

_DATA_DIR = os.getenv("SEMBLOCK_DATA_DIR", "./.semblock")


@dataclass
class Config:
    """Application configuration"""
    data_dir: Path = Path(_DATA_DIR)
    storage_file: Path = Path(os.getenv("SEMBLOCK_STORAGE_FILE", os.path.join(_DATA_DIR, "storage.json")))

    # Backend endpoints
    lmstudio_url: str = os.getenv("SEMBLOCK_LMSTUDIO_URL", "http://localhost:1234")
    openai_url: str = os.getenv("SEMBLOCK_OPENAI_URL", "https://api.openai.com/v1")
    openrouter_url: str = os.getenv("SEMBLOCK_OPENROUTER_URL", "https://openrouter.ai/api/v1")
    llm_timeout: int = int(os.getenv("SEMBLOCK_LLM_TIMEOUT", "300"))

    # LM Studio loads models just-in-time; first request may fail while loading
    lmstudio_retry_delay: float = float(os.getenv("SEMBLOCK_LMSTUDIO_RETRY_DELAY", "5.0"))

    max_text_length: int = int(os.getenv("SEMBLOCK_MAX_TEXT_LENGTH", "4000"))
    max_completion_tokens: int = int(os.getenv("SEMBLOCK_MAX_COMPLETION_TOKENS", "2000"))

    cache_save_delay: float = float(os.getenv("SEMBLOCK_CACHE_SAVE_DELAY", "2.0"))
    availability_ttl: float = float(os.getenv("SEMBLOCK_AVAILABILITY_TTL", "30"))

    log_level: str = os.getenv("SEMBLOCK_LOG_LEVEL", "INFO").upper()

    # Seed values for empty API keys in stored settings
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    openrouter_api_key: str = os.getenv("OPENROUTER_API_KEY", "")


config = Config()
