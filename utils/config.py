"""Environment and settings handling for the audit pipeline."""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent

MB = 1024 * 1024

HF_TOKEN_KEYS = ["HF_TOKEN", "HUGGINGFACE_API_KEY", "HUGGINGFACE_TOKEN"]


def load_env_file() -> bool:
    """Load environment variables from a .env file, project root first."""
    env_paths = [
        PROJECT_ROOT / ".env",
        Path.cwd() / ".env"
    ]
    for env_path in env_paths:
        if env_path.exists():
            with open(env_path, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
            logger.debug("Loaded environment from: %s", env_path)
            return True
    return False


def get_secret(key: str) -> Optional[str]:
    """Get secret from env vars or Streamlit secrets."""
    value = os.environ.get(key)
    if not value:
        try:
            import streamlit as st
            value = st.secrets.get(key)
        except Exception:
            # No secrets.toml outside a Streamlit run
            value = None
    return value or None


def first_secret(keys: List[str]) -> Optional[str]:
    """Return the first secret found among several alias names."""
    for key in keys:
        value = get_secret(key)
        if value:
            return value
    return None


def _env_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", key, value)
        return default


@dataclass
class AuditSettings:
    """Runtime settings for one pipeline instance."""
    hf_token: Optional[str] = None
    hf_model: str = "Qwen/Qwen2.5-VL-7B-Instruct:hyperbolic"
    hf_endpoint: str = "https://router.huggingface.co/v1/chat/completions"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-flash-latest"
    provider_timeout: float = 30.0
    settle_delay_ms: int = 1000
    section_analysis: bool = True
    screenshot_budget: int = 8 * MB
    upload_budget: int = 2 * MB
    provider_image_limit: int = 4 * MB
    block_private_hosts: bool = True
    database_path: str = field(default_factory=lambda: str(PROJECT_ROOT / "reports.db"))

    @classmethod
    def from_env(cls) -> "AuditSettings":
        """Build settings from environment variables (and Streamlit secrets for keys)."""
        defaults = cls()
        return cls(
            hf_token=first_secret(HF_TOKEN_KEYS),
            hf_model=os.environ.get("HF_MODEL", defaults.hf_model),
            hf_endpoint=os.environ.get("HF_ENDPOINT", defaults.hf_endpoint),
            anthropic_api_key=get_secret("ANTHROPIC_API_KEY"),
            anthropic_model=os.environ.get("ANTHROPIC_MODEL", defaults.anthropic_model),
            gemini_api_key=get_secret("GEMINI_API_KEY"),
            gemini_model=os.environ.get("GEMINI_MODEL", defaults.gemini_model),
            # Never let a provider call outlive the 30s ceiling
            provider_timeout=min(float(_env_int("PROVIDER_TIMEOUT", 30)), 30.0),
            settle_delay_ms=_env_int("SETTLE_DELAY_MS", defaults.settle_delay_ms),
            section_analysis=_env_bool("SECTION_ANALYSIS", True),
            screenshot_budget=_env_int("SCREENSHOT_BUDGET_BYTES", defaults.screenshot_budget),
            upload_budget=_env_int("UPLOAD_BUDGET_BYTES", defaults.upload_budget),
            provider_image_limit=_env_int("PROVIDER_IMAGE_LIMIT_BYTES", defaults.provider_image_limit),
            block_private_hosts=_env_bool("BLOCK_PRIVATE_HOSTS", True),
            database_path=os.environ.get("DATABASE_PATH", defaults.database_path),
        )
