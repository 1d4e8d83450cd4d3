"""Structured error types for the UX audit pipeline."""

from typing import Dict, List, Optional


class AuditError(Exception):
    """Base exception for audit errors."""

    remediation = "Try again later."

    def __init__(self, message: str, remediation: Optional[str] = None):
        if remediation:
            self.remediation = remediation
        super().__init__(message)


class ValidationError(AuditError):
    """Error for invalid input (URLs, images, config)."""
    remediation = "Check the URL or image and submit it again."


class PageLoadError(AuditError):
    """Error raised when a page cannot be opened in the browser."""

    REMEDIATIONS = {
        "timeout": "The site is responding slowly. Try again in a few minutes.",
        "navigation-timeout": "The site did not load with any strategy. Check that it is reachable and try again.",
        "navigation-error": "The site could not be reached. Check the URL and that the site is online.",
        "browser-init-error": "The browser could not start. Run: playwright install chromium",
    }

    def __init__(self, url: str, kind: str, message: str, attempts: Optional[list] = None):
        self.url = url
        self.kind = kind
        self.attempts = attempts or []
        super().__init__(
            f"Loading '{url}' ({kind}): {message}",
            remediation=self.REMEDIATIONS.get(kind),
        )


class CaptureError(AuditError):
    """Error while taking screenshots of a loaded page."""
    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(
            f"Screenshot of '{url}': {message}",
            remediation="The page loaded but could not be captured. Try again or upload a screenshot instead.",
        )


class ProviderError(AuditError):
    """Error related to a vision model provider call."""
    def __init__(self, provider: str, kind: str, message: str):
        self.provider = provider
        self.kind = kind
        super().__init__(f"Provider ({provider}, {kind}): {message}")


class AnalysisUnavailableError(AuditError):
    """Every configured provider was skipped or failed."""
    def __init__(self, missing_credentials: List[str], provider_failures: Dict[str, str]):
        self.missing_credentials = missing_credentials
        self.provider_failures = provider_failures
        parts = []
        if missing_credentials:
            parts.append("missing credentials: " + ", ".join(missing_credentials))
        if provider_failures:
            parts.append("provider errors: " + ", ".join(
                f"{name} ({kind})" for name, kind in provider_failures.items()
            ))
        super().__init__(
            "analysis-unavailable: " + ("; ".join(parts) or "no providers registered"),
            remediation="Set at least one of the listed API keys, or retry once the provider recovers.",
        )


class OversizedImageError(AuditError):
    """Uploaded image is too large even after compression."""
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Image is {size} bytes after compression, limit is {limit} bytes",
            remediation="Upload a smaller or lower resolution screenshot.",
        )
