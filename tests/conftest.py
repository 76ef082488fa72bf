"""Shared test fixtures and configuration."""

import os

import pytest


# Proxy variables would route httpx clients away from mock transports
PROXY_VARS = ("http_proxy", "https_proxy", "all_proxy", "HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Isolate every test from RECON_* settings, proxies and a stray .env file."""
    for key in list(os.environ):
        if key.upper().startswith("RECON_"):
            monkeypatch.delenv(key, raising=False)
    for key in PROXY_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


SAMPLE_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Acme Store</title>
  <link rel="stylesheet" href="/static/site.css">
  <script src="/static/app.js"></script>
</head>
<body>
  <nav>
    <a href="/">Home</a>
    <a href="/products?page=2">Products</a>
    <a href="/admin/login">Admin</a>
    <a href="https://cdn.example.com/assets/logo.png">Logo</a>
    <a href="mailto:team@example.com">Mail</a>
  </nav>
  <form action="/search" method="get">
    <input type="text" name="q" required>
    <button type="submit" name="go">Search</button>
  </form>
  <script>
    fetch("/api/v1/cart").then(r => r.json());
  </script>
</body>
</html>
"""


@pytest.fixture
def sample_html() -> str:
    """A small storefront page with links, a form, assets and an inline API call."""
    return SAMPLE_HTML
