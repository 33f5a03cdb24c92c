"""Tests for URL validation and canonicalization."""

import pytest

from cotton_finder.url_validation import (
    URLValidationError,
    canonicalize_url,
    extract_product_id,
    is_product_url,
    sanitize_url,
    validate_image_url,
    validate_url,
)


class TestValidateUrl:
    """Tests for validate_url()."""

    def test_allowed_domain(self):
        url = "https://www.zara.com/ca/en/basic-tee-p1.html"
        assert validate_url(url) == url

    @pytest.mark.parametrize("url", [
        "",
        "javascript:alert(1)",
        "ftp://www.zara.com/file",
        "https://evil.example.com/ca/en/tee-p1.html",
        "https://www.zara.com/../../etc/passwd",
        "https:///no-domain",
    ])
    def test_rejected(self, url):
        with pytest.raises(URLValidationError):
            validate_url(url)

    def test_require_https(self):
        with pytest.raises(URLValidationError):
            validate_url("http://www.zara.com/ca/en/", require_https=True)

    def test_empty_allowed_set_allows_any_domain(self):
        assert validate_url("https://example.org/x", allowed_domains=set()) == "https://example.org/x"


class TestCanonicalizeUrl:
    """Tests for canonicalize_url()."""

    def test_strips_query_and_fragment(self):
        url = "https://www.zara.com/ca/en/basic-tee-p03253320.html?v1=506473367&v2=2420369#top"
        assert canonicalize_url(url) == "https://www.zara.com/ca/en/basic-tee-p03253320.html"

    def test_lowercases_host_only(self):
        assert canonicalize_url("https://WWW.Zara.com/CA/en/Tee-p1.html") == "https://www.zara.com/CA/en/Tee-p1.html"

    def test_is_idempotent(self):
        url = canonicalize_url(" https://www.zara.com/ca/en/tee-p1.html?v1=2 ")
        assert canonicalize_url(url) == url

    def test_empty(self):
        assert canonicalize_url("") == ""

    def test_sanitize_strips_control_characters(self):
        assert sanitize_url(" https://www.zara.com/\x00ca\n ") == "https://www.zara.com/ca"


class TestProductUrls:
    """Tests for product URL recognition and id extraction."""

    @pytest.mark.parametrize("url,expected", [
        ("https://www.zara.com/ca/en/basic-tee-p03253320.html", True),
        ("/ca/en/basic-tee-p03253320.html?v1=1", True),
        ("https://www.zara.com/ca/en/woman/product/p123456.html", True),
        ("https://www.zara.com/ca/en/help.html", False),
        ("https://www.zara.com/ca/en/woman-shirts-l1217.html", False),
        ("https://www.zara.com/ca/en/", False),
    ])
    def test_is_product_url(self, url, expected):
        assert is_product_url(url) is expected

    @pytest.mark.parametrize("url,expected", [
        ("https://www.zara.com/ca/en/basic-tee-p03253320.html", "03253320"),
        ("https://www.zara.com/ca/en/woman/product/p123456.html", "123456"),
        ("https://www.zara.com/ca/en/some-page.html", None),
    ])
    def test_extract_product_id(self, url, expected):
        assert extract_product_id(url) == expected


class TestValidateImageUrl:
    """Tests for validate_image_url()."""

    def test_protocol_relative_cdn_url(self):
        assert validate_image_url("//static.zara.net/photos/a.jpg") == "https://static.zara.net/photos/a.jpg"

    def test_cdn_url_without_extension(self):
        url = "https://static.zara.net/assets/public/abc/w/1920"
        assert validate_image_url(url) == url

    def test_empty(self):
        assert validate_image_url("") == ""

    @pytest.mark.parametrize("url", [
        "javascript:alert(1)",
        "data:image/png;base64,AAAA",
        "https://www.zara.com/ca/en/page.html",
    ])
    def test_rejected(self, url):
        with pytest.raises(URLValidationError):
            validate_image_url(url)
