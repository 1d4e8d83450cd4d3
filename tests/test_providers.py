import asyncio

import pytest
import requests

from providers.base_provider import (
    FailureKind, ProviderResult, failure_kind_for_status, build_prompt
)
from providers.huggingface_provider import HuggingFaceProvider
from utils.errors import ProviderError

from tests.conftest import ScriptedProvider, make_jpeg, ok

IMAGE = make_jpeg()


class FakeResponse:
    def __init__(self, status_code=200, content=None, text=""):
        self.status_code = status_code
        self._content = content
        self.text = text

    def json(self):
        if self._content is None:
            raise ValueError("no json")
        return {"choices": [{"message": {"content": self._content}}]}


class FakeSession:
    """Returns scripted responses (or raises scripted exceptions) per post."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _hf(*outcomes):
    session = FakeSession(*outcomes)
    return HuggingFaceProvider("hf_test_token", session=session), session


def _analyze(provider):
    return asyncio.run(provider.analyze(IMAGE, "image/jpeg"))


@pytest.mark.parametrize("status,kind", [
    (401, FailureKind.AUTH),
    (403, FailureKind.AUTH),
    (429, FailureKind.RATE_LIMITED),
    (500, FailureKind.SERVER_ERROR),
    (503, FailureKind.SERVER_ERROR),
    (400, FailureKind.REJECTED),
    (413, FailureKind.REJECTED),
])
def test_failure_kind_for_status(status, kind):
    assert failure_kind_for_status(status) == kind


def test_short_text_is_empty_response():
    provider = ScriptedProvider("p", [ok("ok")])
    result = _analyze(provider)
    assert not result.success
    assert result.failure_kind == FailureKind.EMPTY_RESPONSE


def test_provider_error_becomes_failed_result():
    provider = ScriptedProvider("p", [ProviderError("p", "rate-limited", "slow down")])
    result = _analyze(provider)
    assert result.failure_kind == FailureKind.RATE_LIMITED
    assert "slow down" in result.message


def test_timeout_is_network_failure():
    class SlowProvider(ScriptedProvider):
        async def _analyze(self, image, mime_type, prompt, section):
            await asyncio.sleep(1)
            return ok()

    result = _analyze(SlowProvider("slow", [ok()], timeout=0.05))
    assert result.failure_kind == FailureKind.NETWORK


def test_timeout_is_capped_at_thirty_seconds():
    assert ScriptedProvider("p", [ok()], timeout=120).timeout == 30.0


def test_section_focus_is_added_to_prompt():
    assert build_prompt("ux_analysis_json", "footer").startswith("This screenshot shows only the FOOTER")
    assert "JSON" in build_prompt("ux_analysis_json")


def test_huggingface_two_stage_flow():
    free_form = "Overview:\nA clean landing page with a clear hero.\nFinal score: 70/100"
    structured = '{"visualDescription": "Landing page", "overallScore": 70}'
    provider, session = _hf(FakeResponse(content=free_form), FakeResponse(content=structured))
    result = _analyze(provider)
    assert result.success
    assert result.raw_text == structured
    assert result.free_form == free_form

    first, second = session.posts
    assert first["headers"]["Authorization"] == "Bearer hf_test_token"
    assert first["json"]["model"] == "Qwen/Qwen2.5-VL-7B-Instruct:hyperbolic"
    assert first["json"]["temperature"] == 0.8
    assert first["json"]["max_tokens"] == 6000
    image_part = first["json"]["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert second["json"]["temperature"] == 0.3
    assert free_form in second["json"]["messages"][0]["content"][0]["text"]
    assert first["timeout"] <= 30


def test_huggingface_empty_second_stage_returns_free_form():
    free_form = "The page is a bakery landing page with large photos."
    provider, _ = _hf(FakeResponse(content=free_form), FakeResponse(content=""))
    result = _analyze(provider)
    assert result.success
    assert result.raw_text == free_form


def test_huggingface_failed_second_stage_returns_free_form():
    free_form = "The page is a bakery landing page with large photos."
    provider, _ = _hf(FakeResponse(content=free_form), FakeResponse(status_code=500))
    assert _analyze(provider).raw_text == free_form


@pytest.mark.parametrize("status,kind", [
    (401, FailureKind.AUTH),
    (429, FailureKind.RATE_LIMITED),
    (502, FailureKind.SERVER_ERROR),
    (413, FailureKind.REJECTED),
])
def test_huggingface_status_mapping(status, kind):
    provider, _ = _hf(FakeResponse(status_code=status, text="error"))
    result = _analyze(provider)
    assert not result.success
    assert result.failure_kind == kind


def test_huggingface_network_error():
    provider, _ = _hf(requests.exceptions.ConnectionError("connection refused"))
    assert _analyze(provider).failure_kind == FailureKind.NETWORK


def test_huggingface_empty_first_stage():
    provider, session = _hf(FakeResponse(content="  "))
    result = _analyze(provider)
    assert result.failure_kind == FailureKind.EMPTY_RESPONSE
    assert len(session.posts) == 1


def test_huggingface_not_configured_without_token():
    assert not HuggingFaceProvider(None).is_configured()
