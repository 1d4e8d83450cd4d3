"""Base class and result types for vision model providers."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from utils.errors import ProviderError

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"

MAX_TIMEOUT = 30.0
MIN_TEXT_LENGTH = 10

SECTION_FOCUS = {
    "header": "This screenshot shows only the HEADER of the page (top of the first screen): "
              "logo, navigation, hero message and the first call to action.",
    "main": "This screenshot shows only the MAIN CONTENT of the page below the header: "
            "content blocks, visual hierarchy, readability and calls to action.",
    "footer": "This screenshot shows only the FOOTER of the page: "
              "contacts, secondary navigation, legal links and trust signals.",
}


class FailureKind(Enum):
    """Why a provider call produced no usable answer."""
    AUTH = "auth"
    RATE_LIMITED = "rate-limited"
    SERVER_ERROR = "server-error"
    EMPTY_RESPONSE = "empty-response"
    NETWORK = "network"
    REJECTED = "rejected"


# Kinds after which a provider is not tried again in the same run
RUN_DISABLING_KINDS = {FailureKind.AUTH, FailureKind.RATE_LIMITED, FailureKind.SERVER_ERROR}


def failure_kind_for_status(status: int) -> FailureKind:
    """Map an HTTP status code to a FailureKind."""
    if status in (401, 403):
        return FailureKind.AUTH
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status >= 500:
        return FailureKind.SERVER_ERROR
    return FailureKind.REJECTED


@dataclass
class ProviderResult:
    """Outcome of a single provider call."""
    success: bool
    raw_text: str = ""
    failure_kind: Optional[FailureKind] = None
    message: str = ""
    free_form: str = ""

    @classmethod
    def ok(cls, raw_text: str, free_form: str = "") -> "ProviderResult":
        return cls(success=True, raw_text=raw_text, free_form=free_form)

    @classmethod
    def failed(cls, kind: FailureKind, message: str) -> "ProviderResult":
        return cls(success=False, failure_kind=kind, message=message)


def load_prompt(prompt_name: str, base_path: Optional[Path] = None) -> str:
    """Load a prompt template from the prompts directory."""
    prompt_path = (base_path or PROMPTS_DIR) / f"{prompt_name}.txt"
    if prompt_path.exists():
        return prompt_path.read_text(encoding='utf-8')
    logger.warning("Prompt %s not found at %s", prompt_name, prompt_path)
    return ""


def build_prompt(prompt_name: str, section: Optional[str] = None) -> str:
    """Load a prompt and prepend the focus note for a page section."""
    prompt = load_prompt(prompt_name)
    focus = SECTION_FOCUS.get(section or "")
    if focus:
        return f"{focus}\n\n{prompt}"
    return prompt


class VisionProvider(ABC):
    """
    Abstract base class for vision model providers.

    Each provider:
    - Reports whether its credentials are present (pre-flight)
    - Makes exactly one attempt per call, with no internal retries
    - Never raises: every failure comes back as a ProviderResult
    """

    name: str = "base"
    credential_keys: List[str] = []
    prompt_name: str = "ux_analysis_json"
    # Upstream requests made per analyze() call
    calls_per_analysis: int = 1

    def __init__(self, api_key: Optional[str], model: str, timeout: float = MAX_TIMEOUT):
        """
        Args:
            api_key: Credential for the provider, None when not configured
            model: Model identifier
            timeout: Per-request timeout in seconds, capped at 30
        """
        self.api_key = api_key
        self.model = model
        self.timeout = min(float(timeout), MAX_TIMEOUT)

    def is_configured(self) -> bool:
        """Check if the provider has credentials."""
        return bool(self.api_key)

    @abstractmethod
    async def _analyze(self, image: bytes, mime_type: str, prompt: str, section: Optional[str]) -> ProviderResult:
        """Provider-specific call. May raise ProviderError."""
        pass

    async def analyze(
        self,
        image: bytes,
        mime_type: str = "image/jpeg",
        prompt: Optional[str] = None,
        section: Optional[str] = None,
    ) -> ProviderResult:
        """
        Ask the model to assess a screenshot.

        Args:
            image: Encoded image bytes
            mime_type: MIME type of `image`
            prompt: Prompt override, built from the provider's template when None
            section: Page section the screenshot shows, if any

        Returns:
            ProviderResult, successful only when the text is usable
        """
        if prompt is None:
            prompt = build_prompt(self.prompt_name, section)
        try:
            result = await asyncio.wait_for(
                self._analyze(image, mime_type, prompt, section),
                timeout=self.timeout * self.calls_per_analysis,
            )
        except asyncio.TimeoutError:
            return ProviderResult.failed(FailureKind.NETWORK, f"{self.name} timed out")
        except ProviderError as e:
            return ProviderResult.failed(FailureKind(e.kind), str(e))

        if result.success and len((result.raw_text or "").strip()) < MIN_TEXT_LENGTH:
            return ProviderResult.failed(FailureKind.EMPTY_RESPONSE, f"{self.name} returned no usable text")
        return result
