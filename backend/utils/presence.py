"""
Presence analysis for one signal channel.

URL channels (organic, shopping) match result hostnames against the company /
competitor domains; the immersive channel matches brand names instead.
"""

from typing import Iterable

from utils.domains import brand_matches_domain, host_from_result_url, matches_domain


def _unique_hits(competitor_domains: Iterable[str], hit) -> list[str]:
    seen: set[str] = set()
    hits: list[str] = []
    for domain in competitor_domains:
        if domain and domain not in seen and hit(domain):
            seen.add(domain)
            hits.append(domain)
    return hits


def analyze_hosts(hosts: Iterable[str], company_domain: str, competitor_domains: list[str]) -> dict:
    """Presence of company / competitors among already-resolved hostnames."""
    hosts = [h for h in hosts if h]
    return {
        "hasCompany": any(matches_domain(h, company_domain) for h in hosts),
        "competitorsHit": _unique_hits(
            competitor_domains, lambda cd: any(matches_domain(h, cd) for h in hosts)
        ),
    }


def analyze_top10(top10: list[str], company_domain: str, competitor_domains: list[str]) -> dict:
    """Presence among ranked result URLs; unparseable links are ignored."""
    hosts = [host_from_result_url(u) for u in top10 if isinstance(u, str)]
    return analyze_hosts([h for h in hosts if h], company_domain, competitor_domains)


def analyze_brands(brands: Iterable[str], company_domain: str, competitor_domains: list[str]) -> dict:
    """Brand-based presence (immersive products): brand token contained in the domain."""
    brands = [b for b in brands if b and b.strip()]
    return {
        "hasCompany": any(brand_matches_domain(b, company_domain) for b in brands),
        "competitorsHit": _unique_hits(
            competitor_domains, lambda cd: any(brand_matches_domain(b, cd) for b in brands)
        ),
    }
