"""
Domain resolution — URL → comparable hostname, and hostname / brand → domain matching.

All functions are pure and never raise on bad input.
"""

import re
import unicodedata
from typing import Optional
from urllib.parse import urlparse

_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def host_from_result_url(url: str) -> Optional[str]:
    """Strict variant for SERP result links: None when the URL has no parseable host."""
    try:
        host = (urlparse((url or "").strip()).hostname or "").lower()
    except ValueError:
        return None
    return _strip_www(host) or None


def hostname_from_url(url: str) -> str:
    """
    'https://www.Example.com/path' → 'example.com'.
    Falls back to stripping protocol + www. and cutting at the first '/'.
    """
    host = host_from_result_url(url)
    if host:
        return host
    cleaned = _PROTOCOL_RE.sub("", (url or "").strip().lower())
    cleaned = _strip_www(cleaned)
    return cleaned.split("/")[0]


def matches_domain(host: str, domain: str) -> bool:
    """Exact host match or subdomain of domain."""
    if not host or not domain:
        return False
    if host == domain:
        return True
    return host.endswith("." + domain)


def normalize_brand(text: str) -> str:
    """Lower-case, strip diacritics, collapse non-alphanumeric runs to one space."""
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub(" ", stripped).strip()


def brand_matches_domain(brand: str, domain: str) -> bool:
    """
    Substring test of the compact brand token against the domain string.

    'Vera Bradley' → 'verabradley' matches 'verabradley.com'. Short or common
    brand names can false-positive; there is no authoritative brand → domain map.
    """
    token = normalize_brand(brand).replace(" ", "")
    if len(token) <= 1 or not domain:
        return False
    return token in domain.lower()


def normalize_url(url: str) -> str:
    """Give bare hosts an https:// scheme so stored profile URLs are comparable."""
    url = (url or "").strip()
    if not url:
        return ""
    if not _PROTOCOL_RE.match(url):
        url = "https://" + url
    parsed = urlparse(url)
    if not parsed.netloc:
        return url
    return parsed._replace(path=parsed.path or "/").geturl()
