from __future__ import annotations

from scam_engine.intelligence_extractor import (
    extract_intelligence,
    is_trusted_url,
    merge_intelligence,
    untrusted_urls,
    url_host,
)
from scam_engine.models import ExtractedIntelligence


def test_empty_text_gives_empty_intelligence():
    assert extract_intelligence("") == ExtractedIntelligence()
    assert extract_intelligence(None) == ExtractedIntelligence()


def test_upi_ids_need_a_known_handle():
    intel = extract_intelligence("Pay to scammer.99@ybl or write to john@gmail.com")
    assert intel.upiIds == ["scammer.99@ybl"]


def test_upi_ids_are_deduplicated_in_order():
    intel = extract_intelligence("Send to a.b@paytm, then c.d@okaxis, then A.B@paytm again")
    assert intel.upiIds == ["a.b@paytm", "c.d@okaxis"]


def test_phone_numbers_are_normalized():
    intel = extract_intelligence("Call 9876543210 or +91 98765 43211 today")
    assert intel.phoneNumbers == ["9876543210", "919876543211"]


def test_short_numbers_are_not_phones():
    intel = extract_intelligence("Your code is 123456 and amount 5000")
    assert intel.phoneNumbers == []


def test_urls_full_www_and_shorteners():
    intel = extract_intelligence("Visit http://bit.ly/abc123 or www.fake-sbi.com/login now.")
    assert intel.urls == ["http://bit.ly/abc123", "www.fake-sbi.com/login"]


def test_bare_domains_are_urls():
    intel = extract_intelligence("Go to sbi.co.in or kyc-update.xyz/verify for details")
    assert intel.urls == ["sbi.co.in", "kyc-update.xyz/verify"]


def test_email_domains_are_not_urls():
    intel = extract_intelligence("Mail me at someone@gmail.com")
    assert intel.urls == []


def test_url_host():
    assert url_host("https://www.hdfcbank.com/login?next=1") == "hdfcbank.com"
    assert url_host("kyc-update.xyz/verify") == "kyc-update.xyz"


def test_untrusted_urls_filter_official_domains():
    urls = [
        "https://www.hdfcbank.com/login",
        "https://incometax.gov.in/refund",
        "http://hdfc-kyc-update.xyz",
        "http://hdfcbank.com.evil.xyz/login",
    ]
    assert untrusted_urls(urls) == ["http://hdfc-kyc-update.xyz", "http://hdfcbank.com.evil.xyz/login"]
    assert is_trusted_url("https://incometax.gov.in/refund")


def test_scam_phrases_from_catalogue():
    intel = extract_intelligence("Please update KYC, your account will be blocked")
    assert "update kyc" in intel.scamPhrases
    assert "account will be blocked" in intel.scamPhrases


def test_behavioral_patterns():
    intel = extract_intelligence("URGENT: share your OTP or your account will be blocked")
    assert "urgency_tactics" in intel.behavioralPatterns
    assert "information_solicitation" in intel.behavioralPatterns
    assert "threat_of_consequences" in intel.behavioralPatterns
    assert "reward_promise" not in intel.behavioralPatterns


def test_extraction_is_stateless():
    text = "Pay 500 to win.big@phonepe and call 9123456789"
    assert extract_intelligence(text) == extract_intelligence(text)


def test_merge_keeps_first_seen_order():
    prior = ExtractedIntelligence(upiIds=["a.b@ybl"], phoneNumbers=["9123456789"])
    current = ExtractedIntelligence(upiIds=["c.d@paytm", "a.b@ybl"], urls=["bit.ly/x"])

    merged = merge_intelligence(prior, current)

    assert merged.upiIds == ["a.b@ybl", "c.d@paytm"]
    assert merged.phoneNumbers == ["9123456789"]
    assert merged.urls == ["bit.ly/x"]
    assert merge_intelligence(ExtractedIntelligence(), ExtractedIntelligence()) == ExtractedIntelligence()
