"""Tests for the common path dictionary."""

from recon_crawler.passive.common_paths import COMMON_PATHS, HIDDEN_PATH_STATUSES, common_path_urls


def test_urls_are_built_on_the_origin():
    urls = common_path_urls("https://example.com:8443", ["/admin", "api/v1", "/admin"])

    assert urls == ["https://example.com:8443/admin", "https://example.com:8443/api/v1"]


def test_trailing_slash_on_origin_is_ignored():
    assert common_path_urls("https://example.com/", ["/.env"]) == ["https://example.com/.env"]


def test_dictionary_has_no_duplicates():
    assert len(set(COMMON_PATHS)) == len(COMMON_PATHS)
    assert all(path.startswith("/") for path in COMMON_PATHS)


def test_refusals_count_as_hidden_paths():
    assert {401, 403}.issubset(HIDDEN_PATH_STATUSES)
    assert 404 not in HIDDEN_PATH_STATUSES
