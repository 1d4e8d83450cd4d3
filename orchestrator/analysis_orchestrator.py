"""Provider fallback chain for screenshot analysis."""

import logging
from enum import Enum
from typing import Dict, List, Optional

from providers.base_provider import VisionProvider, RUN_DISABLING_KINDS
from utils.errors import AnalysisUnavailableError
from utils.normalizer import normalize
from utils.scoring import NormalizedAnalysis, Suggestion, Priority

logger = logging.getLogger(__name__)

# Full phrases only: single words like "robot" or "verify" show up in normal reviews
CAPTCHA_PHRASES = [
    "i'm not a robot",
    "i am not a robot",
    "please confirm that you are not a robot",
    "подтвердите, что вы не робот",
    "обнаружена страница с защитой от роботов",
    "не удалось получить доступ к содержимому сайта",
    "recaptcha challenge",
    "hcaptcha challenge",
    "complete the captcha",
    "captcha challenge",
    "google captcha",
    "cloudflare challenge",
    "cloudflare проверка",
    "verify you are human",
    "подтвердите что вы человек",
]


def is_captcha_page(text: str) -> bool:
    """True when the model describes a bot-protection page instead of the site."""
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in CAPTCHA_PHRASES)


def captcha_analysis(provider: Optional[str] = None) -> NormalizedAnalysis:
    """Fixed zero-score result for pages hidden behind a CAPTCHA."""
    return NormalizedAnalysis(
        issues=[],
        suggestions=[Suggestion(
            title="The page could not be analyzed",
            description="The screenshot shows a bot-protection page (CAPTCHA, reCAPTCHA, hCaptcha "
                        "or a confirmation form). Automated analysis cannot get past it.",
            impact="A full UX/UI analysis of the site is not possible",
            priority=Priority.HIGH.value,
            steps=[
                "Try another URL of the site, for example the home page instead of an inner page",
                "Temporarily disable bot protection for testing",
                "Use a direct link to the page without redirects",
                "Check whether the site blocks automated requests by User-Agent",
                "Try again later when the protection may be relaxed",
            ],
        )],
        overall_score=0,
        visual_description="A bot-protection page (CAPTCHA or confirmation) was detected. "
                           "The site content could not be reached for analysis.",
        provider=provider,
    )


class OrchestratorState(Enum):
    NOT_STARTED = "not_started"
    TRYING_PROVIDER = "trying_provider"
    SUCCEEDED = "succeeded"
    ALL_FAILED = "all_failed"


class AnalysisOrchestrator:
    """
    Tries providers in priority order until one answers.

    One instance serves one audit run. Providers without credentials are
    skipped up front. A provider that fails with an auth, rate-limit or
    server error is not tried again for the rest of the run, so later
    sections go straight to the next provider.
    """

    def __init__(self, providers: List[VisionProvider]):
        """
        Args:
            providers: Providers in priority order
        """
        self.providers = providers
        self.state = OrchestratorState.NOT_STARTED
        self.current_provider: Optional[str] = None
        self.disabled: Dict[str, str] = {}

    def missing_credentials(self) -> List[str]:
        return [" / ".join(p.credential_keys) for p in self.providers if not p.is_configured()]

    async def analyze(self, image: bytes, mime_type: str = "image/jpeg",
                      section: Optional[str] = None) -> NormalizedAnalysis:
        """
        Analyze one screenshot with the first provider that succeeds.

        Args:
            image: Encoded image bytes
            mime_type: MIME type of `image`
            section: Page section shown, if any

        Returns:
            NormalizedAnalysis

        Raises:
            AnalysisUnavailableError: no provider produced a result
        """
        missing = self.missing_credentials()
        failures: Dict[str, str] = {}

        for provider in self.providers:
            if not provider.is_configured():
                logger.debug("Skipping %s: no credentials", provider.name)
                continue
            if provider.name in self.disabled:
                failures[provider.name] = self.disabled[provider.name]
                continue

            self.state = OrchestratorState.TRYING_PROVIDER
            self.current_provider = provider.name
            logger.info("Analyzing %s with %s", section or "screenshot", provider.name)
            result = await provider.analyze(image, mime_type, section=section)

            if result.success:
                self.state = OrchestratorState.SUCCEEDED
                if is_captcha_page(result.raw_text):
                    logger.warning("%s reports a CAPTCHA page", provider.name)
                    return captcha_analysis(provider.name)
                return normalize(result.raw_text, result.free_form, provider.name)

            kind = result.failure_kind
            failures[provider.name] = kind.value
            logger.warning("Provider %s failed (%s): %s", provider.name, kind.value, result.message)
            if kind in RUN_DISABLING_KINDS:
                self.disabled[provider.name] = kind.value

        self.state = OrchestratorState.ALL_FAILED
        self.current_provider = None
        raise AnalysisUnavailableError(missing, failures)
