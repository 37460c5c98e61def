from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent.parent

# Image identification only surfaces a cigar at or above this self-reported confidence.
# Earlier builds used 60; keep it in one place and override with IMAGE_CONFIDENCE_THRESHOLD.
IMAGE_CONFIDENCE_THRESHOLD = 75
DEFAULT_CONFIDENCE = 50
# Confidence reported once a prose backfill resolved to a real catalog entry
BACKFILL_CONFIDENCE = 80
MATCH_ACCEPT_FLOOR = 25
MAX_RECOMMENDATIONS = 2

PLACEHOLDER_KEYS = {"your_groq_api_key_here", "your_gemini_api_key_here"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_key(*names: str) -> str:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value and value not in PLACEHOLDER_KEYS:
            return value
    return ""


@dataclass(frozen=True)
class MatcherConfig:
    """Weights and thresholds for catalog name matching."""
    accept_floor: int = MATCH_ACCEPT_FLOOR
    exact_score: int = 100
    containment_score: int = 98
    numeric_weight: int = 30
    long_token_weight: int = 20
    long_token_length: int = 6
    short_token_weight: int = 10
    brand_match_bonus: int = 20
    multi_token_bonus: int = 10
    name_containment_bonus: int = 15
    composite_containment_bonus: int = 10

    def token_weight(self, token: str) -> int:
        if token.isdigit():
            return self.numeric_weight
        if len(token) >= self.long_token_length:
            return self.long_token_weight
        return self.short_token_weight


@dataclass(frozen=True)
class Settings:
    """Configuration container for providers, storage paths, and guardrail limits."""
    groq_api_key: str = ""
    groq_chat_model: str = "llama-3.3-70b-versatile"
    groq_vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    llm_timeout_seconds: int = 30
    catalog_path: Path = BASE_DIR / "data" / "cigars.json"
    feedback_path: Path = BASE_DIR / "data" / "feedback.json"
    evaluations_path: Path = BASE_DIR / "data" / "evaluations.json"
    admin_password: str = "admin123"
    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    confidence_threshold: int = IMAGE_CONFIDENCE_THRESHOLD
    default_confidence: int = DEFAULT_CONFIDENCE
    backfill_confidence: int = BACKFILL_CONFIDENCE
    max_recommendations: int = MAX_RECOMMENDATIONS
    max_upload_bytes: int = 10 * 1024 * 1024
    max_model_image_bytes: int = 4 * 1024 * 1024
    compress_over_kb: int = 500
    reference_image_count: int = 6
    reference_cache_ttl_seconds: int = 600
    matcher: MatcherConfig = field(default_factory=MatcherConfig)


def load_settings() -> Settings:
    """Build Settings from environment variables, falling back to defaults on missing or bad values."""
    origins = os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    matcher = MatcherConfig(accept_floor=_env_int("MATCH_ACCEPT_FLOOR", MATCH_ACCEPT_FLOOR))
    return Settings(
        groq_api_key=_env_key("GROQ_API_KEY"),
        groq_chat_model=os.getenv("GROQ_CHAT_MODEL", "llama-3.3-70b-versatile"),
        groq_vision_model=os.getenv("GROQ_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct"),
        gemini_api_key=_env_key("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        llm_timeout_seconds=_env_int("LLM_TIMEOUT_SECONDS", 30),
        catalog_path=Path(os.environ.get("CATALOG_PATH", str(BASE_DIR / "data" / "cigars.json"))),
        feedback_path=Path(os.environ.get("FEEDBACK_PATH", str(BASE_DIR / "data" / "feedback.json"))),
        evaluations_path=Path(os.environ.get("EVALUATIONS_PATH", str(BASE_DIR / "data" / "evaluations.json"))),
        admin_password=os.environ.get("ADMIN_PASSWORD", "admin123"),
        allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
        confidence_threshold=_env_int("IMAGE_CONFIDENCE_THRESHOLD", IMAGE_CONFIDENCE_THRESHOLD),
        default_confidence=_env_int("DEFAULT_CONFIDENCE", DEFAULT_CONFIDENCE),
        backfill_confidence=_env_int("BACKFILL_CONFIDENCE", BACKFILL_CONFIDENCE),
        max_recommendations=_env_int("MAX_RECOMMENDATIONS", MAX_RECOMMENDATIONS),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
        max_model_image_bytes=_env_int("MAX_MODEL_IMAGE_BYTES", 4 * 1024 * 1024),
        compress_over_kb=_env_int("COMPRESS_OVER_KB", 500),
        reference_image_count=_env_int("REFERENCE_IMAGE_COUNT", 6),
        reference_cache_ttl_seconds=_env_int("REFERENCE_CACHE_TTL_SECONDS", 600),
        matcher=matcher,
    )
