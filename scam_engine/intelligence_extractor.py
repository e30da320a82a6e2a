"""
INTELLIGENCE EXTRACTOR - Deterministic entity extraction

Pulls what a counterpart leaks into a message:
- UPI IDs (handle@provider, provider must be a known UPI handle)
- Indian phone numbers (normalized digits)
- URLs (full, www., bare domain.tld/path, known shorteners)
- Known scam phrases from the pattern catalogue
- Behavioral pattern labels

Stateless: the same text always produces the same ExtractedIntelligence.
"""

import re
import logging
from typing import Iterable, List, Optional

from .models import ExtractedIntelligence
from .patterns import DEFAULT_CATALOGUE, PatternCatalogue

logger = logging.getLogger(__name__)


VALID_UPI_HANDLES = (
    "paytm", "phonepe", "googlepay", "okaxis", "okhdfcbank", "okicici",
    "oksbi", "ybl", "ibl", "axl", "apl", "upi",
)

TRUSTED_DOMAINS = (
    "gov.in",
    "nic.in",
    "rbi.org.in",
    "npci.org.in",
    "sbi.co.in",
    "onlinesbi.sbi",
    "hdfcbank.com",
    "icicibank.com",
    "axisbank.com",
    "kotak.com",
    "pnbindia.in",
    "paytm.com",
    "phonepe.com",
    "amazon.in",
    "flipkart.com",
    "google.com",
)

BEHAVIORAL_PATTERNS = {
    "urgency_tactics": re.compile(
        r'\b(?:urgent\w*|immediately|now|quickly|hurry|asap|within \d+)\b', re.IGNORECASE
    ),
    "authority_impersonation": re.compile(
        r'\b(?:bank|rbi|police|government|officer|official|department)\b', re.IGNORECASE
    ),
    "information_solicitation": re.compile(
        r'\b(?:send|share|provide|give|tell)\b.*\b(?:otp|pin|password|details|number|cvv|account)',
        re.IGNORECASE
    ),
    "threat_of_consequences": re.compile(
        r'\b(?:block\w*|suspend\w*|arrest\w*|legal action|penalty|fine|freez\w*|closed?)\b',
        re.IGNORECASE
    ),
    "reward_promise": re.compile(
        r'\b(?:won|winner|prize|reward|cashback|lottery|gift|bonus)\b', re.IGNORECASE
    ),
    "external_communication_request": re.compile(
        r'\b(?:whatsapp|telegram|call (?:me|us|this number)|sms|contact (?:me|us))\b',
        re.IGNORECASE
    ),
}


class IntelligenceExtractor:
    """
    Regex extraction for Indian payment scams.

    Every list in the result is de-duplicated and kept in first-seen order.
    """

    def __init__(self, catalogue: Optional[PatternCatalogue] = None):
        self.catalogue = catalogue or DEFAULT_CATALOGUE
        self._init_patterns()

    def _init_patterns(self):
        self.patterns = {
            "upi": re.compile(r'\b[a-zA-Z0-9._-]{2,256}@([a-zA-Z]{2,64})\b'),

            # 10 digits starting 6-9, optional +91 / 91 prefix
            "phone": re.compile(r'(?<![\d+])(?:\+?91[\s-]?)?[6-9]\d{4}[\s-]?\d{5}(?!\d)'),

            "url": re.compile(
                r'https?://[^\s<>"\']+'
                r'|www\.[^\s<>"\']+'
                r'|\b(?:bit\.ly|tinyurl\.com|t\.co|goo\.gl|cutt\.ly|rb\.gy|is\.gd|shorturl\.at)/[^\s<>"\']+'
                r'|(?<![@\w.])[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)*'
                r'\.(?:com|in|net|org|xyz|info|co|io|tk|ml|ga|cf|gq|online|site|top|link)\b'
                r'(?:/[^\s<>"\']*)?',
                re.IGNORECASE
            ),
        }

    def extract(self, text: Optional[str]) -> ExtractedIntelligence:
        if not text or not isinstance(text, str):
            return ExtractedIntelligence()

        text_lower = text.lower()
        return ExtractedIntelligence(
            upiIds=self._extract_upi_ids(text),
            phoneNumbers=self._extract_phone_numbers(text),
            urls=self._extract_urls(text),
            scamPhrases=[p for p in _unique(self.catalogue.phrases) if p in text_lower],
            behavioralPatterns=[
                label for label, pattern in BEHAVIORAL_PATTERNS.items()
                if pattern.search(text)
            ],
        )

    def _extract_upi_ids(self, text: str) -> List[str]:
        found = []
        for match in self.patterns["upi"].finditer(text):
            provider = match.group(1).lower()
            if any(handle in provider for handle in VALID_UPI_HANDLES):
                found.append(match.group(0).lower())
        return _unique(found)

    def _extract_phone_numbers(self, text: str) -> List[str]:
        found = []
        for match in self.patterns["phone"].finditer(text):
            phone = re.sub(r'[\s+-]', '', match.group(0))
            if len(phone) in (10, 12):
                found.append(phone)
        return _unique(found)

    def _extract_urls(self, text: str) -> List[str]:
        found = []
        for match in self.patterns["url"].finditer(text):
            url = match.group(0).rstrip('.,;:!?)]')
            if url:
                found.append(url)
        return _unique(found)


def url_host(url: str) -> str:
    host = re.sub(r'^[a-z]+://', '', url.strip().lower())
    host = re.split(r'[/?#:]', host, maxsplit=1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


def is_trusted_url(url: str) -> bool:
    host = url_host(url)
    return any(host == domain or host.endswith("." + domain) for domain in TRUSTED_DOMAINS)


def untrusted_urls(urls: Iterable[str]) -> List[str]:
    """URLs whose host is not a known official domain"""
    return [url for url in urls if not is_trusted_url(url)]


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def merge_intelligence(
    prior: ExtractedIntelligence,
    current: ExtractedIntelligence,
) -> ExtractedIntelligence:
    """Session-level accumulation: prior items first, new ones appended"""
    return ExtractedIntelligence(**{
        field: _unique(getattr(prior, field) + getattr(current, field))
        for field in ExtractedIntelligence.model_fields
    })


# Singleton instance
intelligence_extractor = IntelligenceExtractor()


def extract_intelligence(text: Optional[str]) -> ExtractedIntelligence:
    return intelligence_extractor.extract(text)
