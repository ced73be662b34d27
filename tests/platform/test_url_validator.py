from sitespeed.platform.utils.url_validator import parse_manual_urls, unique_in_order, validate_url


def test_validate_url_adds_missing_scheme():
    is_valid, url, error = validate_url("example.com/about")
    assert is_valid is True
    assert url == "https://example.com/about"
    assert error == ""


def test_validate_url_rejects_other_schemes():
    is_valid, _, error = validate_url("ftp://example.com")
    assert is_valid is False
    assert "Invalid URL scheme" in error


def test_validate_url_rejects_empty():
    assert validate_url("   ") == (False, "", "URL cannot be empty")


def test_parse_manual_urls():
    pasted = "https://a.test\n  https://b.test , https://a.test\n\n,https://c.test  "
    assert parse_manual_urls(pasted) == ["https://a.test", "https://b.test", "https://c.test"]
    assert parse_manual_urls("") == []


def test_unique_in_order():
    assert unique_in_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
