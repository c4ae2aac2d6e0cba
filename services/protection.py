"""Protection check: does the stream page refuse to be embedded?

Plain HTTP, no admission control. Any doubt is reported as protected:
network errors and 5xx responses fail closed because the caller cannot
assume the stream is embeddable.
"""

import re

import requests

from models.config import ScraperSettings
from models.models import ProtectionResult
from scrapers.loader import ExtractorProtocol
from utils.http import PageFetcher
from utils.logging import get_logger

logger = get_logger(__name__)

ANTI_EMBED_SIGNATURES: list[tuple[str, re.Pattern]] = [
    ("frame-bust check (window == window.top)", re.compile(r"if\s*\(\s*window\s*==\s*window\.top\s*\)", re.I)),
    ("window.location.replace redirect", re.compile(r"window\.location\.replace", re.I)),
    ("window.top.location redirect", re.compile(r"window\.top\.location", re.I)),
    ("parent.location redirect", re.compile(r"parent\.location", re.I)),
    ("top.location redirect", re.compile(r"top\.location", re.I)),
    ("frameElement access", re.compile(r"frameElement", re.I)),
    ("anti-embed marker", re.compile(r"anti-embed", re.I)),
    ("embedding block marker", re.compile(r"embedding.*block", re.I)),
    ("no-embed marker", re.compile(r"no[-_ ]?embed", re.I)),
]

CHALLENGE_MARKERS = ("cloudflare", "challenge-platform")
# src= that is not the tail of data-src=
PLAIN_SRC = re.compile(r"(?<![-\w])src\s*=", re.I)


def detect_protection(html: str, url: str, extractor: ExtractorProtocol) -> ProtectionResult:
    """Apply the signature table to already fetched HTML."""
    embeddable = extractor.is_embeddable_provider(url)
    reasons = [label for label, pattern in ANTI_EMBED_SIGNATURES if pattern.search(html)]

    if any(marker in html for marker in CHALLENGE_MARKERS) and not embeddable:
        reasons.append("Cloudflare challenge detected")

    if "data-src" in html and not PLAIN_SRC.search(html):
        reasons.append("Dynamic iframe loading detected")

    if embeddable:
        if reasons:
            logger.debug(f"Ignoring protection signatures for embeddable provider {url}: {reasons}")
        return ProtectionResult(protected=False, reasons=reasons)

    if reasons:
        return ProtectionResult(protected=True, reason=", ".join(reasons), reasons=reasons)
    return ProtectionResult(protected=False)


class ProtectionChecker:
    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: ExtractorProtocol,
        scraper_settings: ScraperSettings | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.settings = scraper_settings or ScraperSettings()

    async def check(self, url: str) -> ProtectionResult:
        try:
            response = await self.fetcher.get(url, timeout=self.settings.protection_timeout)
        except requests.RequestException as exc:
            logger.warning(f"Protection check for {url} failed: {exc}")
            return ProtectionResult(protected=True, reason=f"Check failed: {exc}")

        if response.status_code >= 500:
            reason = f"Check failed: status {response.status_code}"
            logger.warning(f"Protection check for {url}: {reason}")
            return ProtectionResult(protected=True, reason=reason)

        result = detect_protection(response.text, url, self.extractor)
        if result.protected:
            logger.info(f"Protection detected on {url}: {result.reason}")
        return result
