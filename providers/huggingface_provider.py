"""Hugging Face Inference Router provider (OpenAI-compatible chat API)."""

import asyncio
import base64
import logging
from typing import Any, Dict, Optional

import requests

from providers.base_provider import (
    VisionProvider, ProviderResult, FailureKind, MIN_TEXT_LENGTH,
    failure_kind_for_status, load_prompt
)
from utils.config import HF_TOKEN_KEYS
from utils.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://router.huggingface.co/v1/chat/completions"
DEFAULT_MODEL = "Qwen/Qwen2.5-VL-7B-Instruct:hyperbolic"

STATUS_MESSAGES = {
    400: "request rejected as malformed",
    401: "token is invalid",
    403: "token has no access to this model",
    413: "image is too large for the endpoint",
    429: "rate limit exceeded",
}


class HuggingFaceProvider(VisionProvider):
    """
    Two-stage analysis through the Hugging Face router.

    Stage one asks for a free-form UX review of the screenshot. Stage two
    asks the model to structure that review as JSON. If stage two produces
    nothing usable, the free-form review is the answer.
    """

    name = "huggingface"
    credential_keys = HF_TOKEN_KEYS
    prompt_name = "ux_free_form"
    calls_per_analysis = 2

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL,
                 timeout: float = 30.0, endpoint: str = DEFAULT_ENDPOINT,
                 session: Optional[requests.Session] = None):
        super().__init__(api_key, model, timeout)
        self.endpoint = endpoint
        self.session = session or requests.Session()

    def _payload(self, prompt: str, data_uri: str, temperature: float, max_tokens: int) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": data_uri}},
                ],
            }],
            "stream": False,
            "temperature": temperature,
            "top_p": 0.9,
            "max_tokens": max_tokens,
        }

    def _post(self, payload: Dict[str, Any]) -> str:
        """Send one chat completion request and return the message text."""
        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            # Timeouts and connection errors: no response at all
            raise ProviderError(self.name, FailureKind.NETWORK.value, str(e)) from e

        if response.status_code >= 400:
            kind = failure_kind_for_status(response.status_code)
            detail = STATUS_MESSAGES.get(response.status_code, response.text[:200])
            raise ProviderError(self.name, kind.value, f"HTTP {response.status_code}: {detail}")

        try:
            data = response.json()
            return (data["choices"][0]["message"]["content"] or "").strip()
        except (ValueError, KeyError, IndexError, TypeError):
            return ""

    async def _analyze(self, image: bytes, mime_type: str, prompt: str, section: Optional[str]) -> ProviderResult:
        data_uri = f"data:{mime_type};base64,{base64.b64encode(image).decode('utf-8')}"

        logger.info("Hugging Face stage 1: free-form analysis with %s", self.model)
        free_form = await asyncio.to_thread(
            self._post, self._payload(prompt, data_uri, temperature=0.8, max_tokens=6000)
        )
        if len(free_form) < MIN_TEXT_LENGTH:
            return ProviderResult.failed(FailureKind.EMPTY_RESPONSE,
                                         "Hugging Face returned an empty free-form analysis")

        logger.info("Hugging Face stage 2: structuring %d characters as JSON", len(free_form))
        structure_prompt = load_prompt("structure_json").replace("{previousAnalysis}", free_form)
        try:
            structured = await asyncio.to_thread(
                self._post, self._payload(structure_prompt, data_uri, temperature=0.3, max_tokens=4000)
            )
        except ProviderError as e:
            logger.warning("Structuring stage failed, using free-form analysis: %s", e)
            structured = ""

        if len(structured) < MIN_TEXT_LENGTH:
            return ProviderResult.ok(free_form, free_form=free_form)
        return ProviderResult.ok(structured, free_form=free_form)
