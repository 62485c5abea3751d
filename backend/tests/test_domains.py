from utils.domains import (
    brand_matches_domain,
    host_from_result_url,
    hostname_from_url,
    matches_domain,
    normalize_brand,
    normalize_url,
)
from utils.presence import analyze_brands, analyze_hosts, analyze_top10


# ── Domain resolution ─────────────────────────────────────

def test_hostname_lowercases_and_strips_www():
    assert hostname_from_url("https://www.Example.com/path") == "example.com"


def test_hostname_fallback_for_bare_host():
    assert hostname_from_url("www.Example.com/some/page") == "example.com"
    assert hostname_from_url("example.org") == "example.org"


def test_hostname_never_raises():
    assert hostname_from_url("") == ""
    assert hostname_from_url("http://[::1") == "[::1"


def test_result_url_without_host_is_none():
    assert host_from_result_url("not a url") is None
    assert host_from_result_url("https://shop.example.com/x") == "shop.example.com"


def test_matches_domain_exact_and_subdomain():
    assert matches_domain("example.com", "example.com")
    assert matches_domain("sub.example.com", "example.com")
    assert not matches_domain("notexample.com", "example.com")
    assert not matches_domain("", "example.com")


def test_normalize_brand_strips_diacritics_and_punctuation():
    assert normalize_brand("  Café--Noir & Co. ") == "cafe noir co"


def test_brand_matches_domain():
    assert brand_matches_domain("Vera Bradley", "verabradley.com")
    assert not brand_matches_domain("Vera Bradley", "bradley.com")


def test_single_char_brand_never_matches():
    assert not brand_matches_domain("X", "xbox.com")
    assert not brand_matches_domain("!!", "example.com")


def test_short_brand_false_positive_is_accepted():
    # substring test, not identity
    assert brand_matches_domain("Go", "google.com")


def test_normalize_url_adds_scheme_and_path():
    assert normalize_url("acme.com") == "https://acme.com/"
    assert normalize_url("http://acme.com/about") == "http://acme.com/about"
    assert normalize_url("  ") == ""


# ── Presence analysis ─────────────────────────────────────

def test_analyze_top10_company_and_competitors():
    urls = [
        "https://www.acme.com/blog",
        "https://docs.rival.com/a",
        "https://rival.com/b",
        "garbage",
    ]
    result = analyze_top10(urls, "acme.com", ["rival.com", "other.io"])
    assert result == {"hasCompany": True, "competitorsHit": ["rival.com"]}


def test_analyze_top10_dedupes_competitor_domains():
    result = analyze_top10(["https://rival.com"], "acme.com", ["rival.com", "rival.com"])
    assert result["competitorsHit"] == ["rival.com"]
    assert result["hasCompany"] is False


def test_analyze_hosts_keeps_competitor_order():
    result = analyze_hosts(["other.io", "shop.rival.com"], "acme.com", ["rival.com", "other.io"])
    assert result["competitorsHit"] == ["rival.com", "other.io"]


def test_analyze_brands():
    result = analyze_brands(["Acme", "Rival Inc", ""], "acme.com", ["rivalinc.com", "other.io"])
    assert result == {"hasCompany": True, "competitorsHit": ["rivalinc.com"]}
