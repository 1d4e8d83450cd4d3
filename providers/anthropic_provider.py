"""Anthropic Claude vision provider."""

import base64
import logging
from typing import Optional

from providers.base_provider import VisionProvider, ProviderResult, FailureKind, failure_kind_for_status
from utils.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
SUPPORTED_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


def classify_anthropic_error(error: Exception) -> FailureKind:
    """Map an anthropic SDK exception to a FailureKind."""
    import anthropic

    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return FailureKind.AUTH
    if isinstance(error, anthropic.RateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(error, anthropic.APIStatusError):
        return failure_kind_for_status(error.status_code)
    if isinstance(error, anthropic.APIConnectionError):
        # Includes APITimeoutError
        return FailureKind.NETWORK
    return FailureKind.REJECTED


class AnthropicProvider(VisionProvider):
    """Single-call JSON analysis through the Anthropic Messages API."""

    name = "anthropic"
    credential_keys = ["ANTHROPIC_API_KEY"]

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL,
                 timeout: float = 30.0, max_tokens: int = 4000):
        super().__init__(api_key, model, timeout)
        self.max_tokens = max_tokens
        self._client = None

    @property
    def client(self):
        """Lazy initialization of the async API client."""
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise ImportError("anthropic package not installed. Run: pip install anthropic")
            # One attempt per run: the orchestrator decides what happens next
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    async def _analyze(self, image: bytes, mime_type: str, prompt: str, section: Optional[str]) -> ProviderResult:
        import anthropic

        if mime_type not in SUPPORTED_MIME_TYPES:
            return ProviderResult.failed(FailureKind.REJECTED, f"unsupported image type {mime_type}")

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.3,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": mime_type,
                                "data": base64.b64encode(image).decode("utf-8"),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }],
            )
        except anthropic.APIError as e:
            kind = classify_anthropic_error(e)
            raise ProviderError(self.name, kind.value, str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        logger.info("Anthropic returned %d characters", len(text))
        return ProviderResult.ok(text.strip())
