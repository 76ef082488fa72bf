"""Tests for the HTML, JavaScript and CSS extractors."""

import pytest

from recon_crawler.domain.models import Form, FormField
from recon_crawler.fetching.extractors import (
    CssExtractor,
    ExtractorKind,
    ExtractorRegistry,
    HtmlExtractor,
    JsExtractor,
    find_subdomains,
)


PAGE = b"""<html><head>
<base href="/app/">
<link rel="stylesheet" href="/static/site.css">
<script src="https://cdn.example.net/lib.js"></script>
<style>.hero { background: url('img/hero.png'); }</style>
</head><body>
<a href="users?id=1">Users</a>
<a href="#top">Top</a>
<a href="mailto:admin@example.com">Mail</a>
<a href="javascript:void(0)">Nope</a>
<iframe src="https://shop.example.com/embed"></iframe>
<form action="/login" method="post">
  <input name="user" required>
  <input type="password" name="pass">
  <input type="submit">
  <select name="lang"></select>
</form>
<script>fetch('/api/v2/session'); var x = "https://static.example.com/a.js";</script>
</body></html>"""


class TestHtmlExtractor:
    """Link, asset and form extraction from a realistic page."""

    @pytest.fixture
    def artifacts(self):
        return HtmlExtractor().extract("https://example.com/index.html", "text/html", PAGE)

    def test_links_resolve_against_base_href(self, artifacts):
        assert "https://example.com/app/users?id=1" in artifacts.links
        assert "https://shop.example.com/embed" in artifacts.links

    def test_skips_fragments_and_pseudo_schemes(self, artifacts):
        assert not any(link.startswith(("mailto:", "javascript:")) for link in artifacts.links)
        assert all("#" not in link for link in artifacts.links)

    def test_assets_are_also_links(self, artifacts):
        assert "https://example.com/static/site.css" in artifacts.assets
        assert "https://cdn.example.net/lib.js" in artifacts.assets
        assert set(artifacts.assets) <= set(artifacts.links)

    def test_form_with_fields(self, artifacts):
        assert artifacts.forms == [
            Form(
                action="https://example.com/login",
                method="POST",
                fields=(
                    FormField(name="user", type="text", required=True),
                    FormField(name="pass", type="password"),
                    FormField(name="lang", type="select"),
                ),
            )
        ]
        assert "https://example.com/login" in artifacts.links

    def test_inline_script_and_style_are_mined(self, artifacts):
        assert "https://example.com/api/v2/session" in artifacts.apis
        assert "https://example.com/app/img/hero.png" in artifacts.assets

    def test_subdomains_and_html_content(self, artifacts):
        assert "static.example.com" in artifacts.subdomains
        assert "cdn.example.net" in artifacts.subdomains
        assert artifacts.html_content.startswith("<html>")

    def test_form_without_action_posts_to_page(self):
        artifacts = HtmlExtractor().extract(
            "https://example.com/search", "text/html", b"<form><input name='q'></form>"
        )

        assert artifacts.forms[0].action == "https://example.com/search"
        assert artifacts.forms[0].method == "GET"


class TestJsExtractor:
    def test_api_call_styles(self):
        source = """
            fetch("/api/users");
            axios.post('/v1/orders', data);
            $.ajax({type: 'GET', url: '/legacy/search'});
            $.getJSON('/feed.json');
            xhr.open("POST", "/rpc/call");
        """

        artifacts = JsExtractor().extract_text("https://example.com/app.js", source)

        assert artifacts.apis == [
            "https://example.com/api/users",
            "https://example.com/v1/orders",
            "https://example.com/legacy/search",
            "https://example.com/feed.json",
            "https://example.com/rpc/call",
        ]

    def test_absolute_urls_and_paths_become_links(self):
        source = "var cdn = 'https://img.example.com/x.png'; route('/account/settings');"

        artifacts = JsExtractor().extract_text("https://example.com/app.js", source)

        assert "https://img.example.com/x.png" in artifacts.links
        assert "https://example.com/account/settings" in artifacts.links
        assert artifacts.subdomains == ["img.example.com"]


def test_css_extractor_reads_imports_and_urls():
    css = b"@import 'theme.css'; body { background: url(\"/img/bg.jpg\"); } .x { src: url(data:abc) }"

    artifacts = CssExtractor().extract("https://example.com/css/site.css", "text/css", css)

    assert artifacts.assets == ["https://example.com/css/theme.css", "https://example.com/img/bg.jpg"]
    assert artifacts.links == artifacts.assets


def test_find_subdomains_is_lowercase_and_unique():
    text = "see https://API.example.com/x and http://api.example.com/y or https://www.example.org"

    assert find_subdomains(text) == ["api.example.com", "www.example.org"]


class TestExtractorRegistry:
    @pytest.mark.parametrize(
        ("content_type", "url", "kind"),
        [
            ("text/html; charset=utf-8", "https://a.com/", ExtractorKind.HTML),
            ("", "https://a.com/page", ExtractorKind.HTML),
            ("application/javascript", "https://a.com/x", ExtractorKind.JS),
            ("", "https://a.com/bundle.mjs", ExtractorKind.JS),
            ("text/css", "https://a.com/x", ExtractorKind.CSS),
            ("application/octet-stream", "https://a.com/site.css", ExtractorKind.CSS),
            ("image/png", "https://a.com/logo.png", None),
            ("text/plain", "https://a.com/robots.txt", None),
        ],
    )
    def test_kind_for(self, content_type, url, kind):
        assert ExtractorRegistry().kind_for(content_type, url) == kind

    def test_default_registry_routes_by_kind(self):
        registry = ExtractorRegistry.default()

        [html] = registry.for_response("text/html", "https://a.com/")
        [js] = registry.for_response("text/javascript", "https://a.com/a.js")

        assert isinstance(html, HtmlExtractor)
        assert isinstance(js, JsExtractor)
        assert registry.for_response("image/png", "https://a.com/logo.png") == []
