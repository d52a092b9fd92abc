"""
Shared link extraction and cleaning utilities.

Announcements mix real URLs with tokens that look like domains (company names
such as "Boop.fun", amounts such as "32.0M"). Both extraction engines funnel
their links through here so the persisted `links` field is always a
deduplicated list of absolute URLs.
"""

import re
from typing import Iterable, List

# http(s) URLs, www. hosts, or bare domains on common suffixes
LINK_PATTERN = re.compile(
    r'(https?://[^\s]+)'
    r'|(\bwww\.[^\s]+)'
    r'|([a-zA-Z0-9][-a-zA-Z0-9]{0,62}\.(?:com|io|org|net|finance|xyz|app|dev|eth|crypto|nft|fund)[^\s)*,;:!]?)',
    re.IGNORECASE,
)

# Bare amounts like "32.0M", "2.5B", "10"
AMOUNT_TOKEN_PATTERN = re.compile(r'^[\d.]+M?B?$')

# Bare identifiers with no dot ("Acme", "T-Rex")
BARE_IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9.-]+$')

# Tokens the link regex picks up that are never links
NON_URL_LITERALS = {"T-Rex", "others.", "etc.", "e.g."}

# Company names written with a domain-like suffix
KNOWN_COMPANY_TOKENS = {"Turtle.Club", "Boop.fun", "T-Rex"}

# Domain suffixes accepted for scheme-less links
LINK_DOMAIN_SUFFIXES = (".io", ".com", ".org")
MODEL_LINK_DOMAIN_SUFFIXES = (".com", ".io", ".org", ".net")

TRAILING_PUNCTUATION = ".,;:!?)]}\"'"


def ensure_scheme(url: str) -> str:
    """Prefix https:// when a link has no http(s) scheme."""
    if not url.startswith("http"):
        return "https://" + url
    return url


def dedupe(links: Iterable[str]) -> List[str]:
    """Remove duplicates, keeping first-seen order."""
    seen = set()
    unique = []
    for link in links:
        if link not in seen:
            seen.add(link)
            unique.append(link)
    return unique


def extract_links(text: str) -> List[str]:
    """
    Pull URL-shaped tokens out of free text.

    Examples:
        >>> extract_links("Website: acme.io Twitter: https://x.com/acme")
        ['acme.io', 'https://x.com/acme']
    """
    links = []
    for match in LINK_PATTERN.finditer(text or ""):
        url = match.group(0)
        if match.group(1) or match.group(2):
            url = url.rstrip(TRAILING_PUNCTUATION)

        if AMOUNT_TOKEN_PATTERN.match(url):
            continue
        if url in NON_URL_LITERALS:
            continue
        if "." not in url or "@" in url:
            continue

        links.append(url)
    return links


def clean_links(links: Iterable[str]) -> List[str]:
    """
    Filter and canonicalize links found by the pattern parser.

    Drops amounts and known company tokens, keeps anything with a scheme or a
    common domain suffix, and returns deduplicated absolute URLs.
    """
    valid = []
    for link in links:
        if not link or AMOUNT_TOKEN_PATTERN.match(link):
            continue
        if link in KNOWN_COMPANY_TOKENS:
            continue
        if not (link.startswith("http") or any(s in link for s in LINK_DOMAIN_SUFFIXES)):
            continue
        valid.append(ensure_scheme(link))
    return dedupe(valid)


def clean_model_links(links: Iterable) -> List[str]:
    """
    Filter and canonicalize links returned by the generation service.

    The model sometimes returns amounts or company names in `links`; those
    are removed. Non-string entries are ignored.
    """
    valid = []
    for link in links:
        if not link or not isinstance(link, str):
            continue
        link = link.strip()

        if not link.startswith("http") and not any(s in link for s in MODEL_LINK_DOMAIN_SUFFIXES):
            continue
        if AMOUNT_TOKEN_PATTERN.match(link):
            continue
        if BARE_IDENTIFIER_PATTERN.match(link) and "." not in link:
            continue

        valid.append(ensure_scheme(link))
    return dedupe(valid)
