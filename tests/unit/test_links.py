"""Unit tests for referral link helpers."""

from affiliates.utils.links import build_referral_link, parse_referral_params


class TestBuildReferralLink:
    """Tests for build_referral_link."""

    def test_root_link(self):
        assert build_referral_link("https://example.com", "JOHN20") == (
            "https://example.com/?ref=JOHN20"
        )

    def test_path_and_sub_id(self):
        link = build_referral_link("https://example.com/", "JOHN20", "/pricing", "yt")
        assert link == "https://example.com/pricing?ref=JOHN20&sub=yt"

    def test_existing_query_kept(self):
        link = build_referral_link("https://example.com", "JOHN20", "/p?plan=pro")
        assert link == "https://example.com/p?plan=pro&ref=JOHN20"

    def test_existing_ref_replaced(self):
        link = build_referral_link("https://example.com", "JOHN20", "/?ref=OTHER")
        assert link == "https://example.com/?ref=JOHN20"


class TestParseReferralParams:
    """Tests for parse_referral_params."""

    def test_query_string(self):
        assert parse_referral_params("ref=john20&sub=yt") == ("JOHN20", "yt")

    def test_full_url(self):
        assert parse_referral_params("https://example.com/?ref=abc") == ("ABC", None)

    def test_no_params(self):
        assert parse_referral_params("utm_source=x") == (None, None)

    def test_round_trip_with_builder(self):
        link = build_referral_link("https://example.com", "JOHN20", sub_id="news")
        assert parse_referral_params(link) == ("JOHN20", "news")
