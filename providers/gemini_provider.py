"""Google Gemini vision provider."""

import logging
from typing import Optional

from providers.base_provider import VisionProvider, ProviderResult, FailureKind
from utils.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-flash-latest"


def classify_gemini_error(error: Exception) -> FailureKind:
    """Map a google.api_core exception to a FailureKind."""
    from google.api_core import exceptions as gexc

    if isinstance(error, (gexc.Unauthenticated, gexc.PermissionDenied)):
        return FailureKind.AUTH
    if isinstance(error, (gexc.ResourceExhausted, gexc.TooManyRequests)):
        return FailureKind.RATE_LIMITED
    # DeadlineExceeded is a 504 ServerError, but it means no answer arrived
    if isinstance(error, gexc.DeadlineExceeded):
        return FailureKind.NETWORK
    if isinstance(error, gexc.ServerError):
        return FailureKind.SERVER_ERROR
    if isinstance(error, gexc.ClientError):
        return FailureKind.REJECTED
    return FailureKind.NETWORK


class GeminiProvider(VisionProvider):
    """Single-call JSON analysis through google-generativeai."""

    name = "gemini"
    credential_keys = ["GEMINI_API_KEY"]

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL,
                 timeout: float = 30.0, max_tokens: int = 4000):
        super().__init__(api_key, model, timeout)
        self.max_tokens = max_tokens
        self._model = None

    @property
    def generative_model(self):
        """Lazy initialization of the Gemini model."""
        if self._model is None:
            try:
                import google.generativeai as genai
            except ImportError:
                raise ImportError("google-generativeai package not installed. Run: pip install google-generativeai")
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model)
        return self._model

    async def _analyze(self, image: bytes, mime_type: str, prompt: str, section: Optional[str]) -> ProviderResult:
        from google.api_core import exceptions as gexc

        try:
            response = await self.generative_model.generate_content_async(
                [prompt, {"mime_type": mime_type, "data": image}],
                generation_config={"temperature": 0.3, "max_output_tokens": self.max_tokens},
                request_options={"timeout": self.timeout},
            )
        except gexc.GoogleAPIError as e:
            kind = classify_gemini_error(e)
            raise ProviderError(self.name, kind.value, str(e)) from e

        try:
            text = response.text
        except ValueError as e:
            # Blocked or empty candidate
            return ProviderResult.failed(FailureKind.EMPTY_RESPONSE, f"Gemini returned no text: {e}")
        logger.info("Gemini returned %d characters", len(text or ""))
        return ProviderResult.ok((text or "").strip())
