"""Cookie loading for authenticated crawls.

Accepted inputs:

- a header string: ``"session=abc; theme=dark"``
- a JSON file: ``{"session": "abc"}`` or a list of ``{"name", "value", "domain", "path"}`` objects
- a Netscape ``cookies.txt`` file (tab separated, as exported by browsers and curl)
- a plain file of ``name=value`` pairs, one per line or ``;``-separated
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx

from ..errors import ConfigError


logger = logging.getLogger(__name__)


def parse_cookie_string(cookie_string: str, *, domain: str = "") -> httpx.Cookies:
    cookies = httpx.Cookies()
    for pair in cookie_string.replace("\n", ";").split(";"):
        if "=" not in pair:
            continue
        name, value = pair.split("=", 1)
        name = name.strip()
        if name:
            cookies.set(name, value.strip(), domain=domain)
    return cookies


def load_cookie_file(path: str | Path, *, domain: str = "") -> httpx.Cookies:
    """Load cookies from ``path`` in any supported format.

    Raises:
        ConfigError: When the file is missing or holds no usable cookies.
    """
    cookie_path = Path(path)
    try:
        content = cookie_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read cookie file {cookie_path}: {exc}") from exc

    stripped = content.strip()
    if stripped.startswith(("{", "[")):
        cookies = _from_json(stripped, domain)
    elif "\t" in stripped or stripped.startswith("# Netscape"):
        cookies = _from_netscape(stripped)
    else:
        cookies = parse_cookie_string(stripped, domain=domain)

    if not list(cookies.jar):
        raise ConfigError(f"No cookies found in {cookie_path}")
    logger.info(f"Loaded {len(list(cookies.jar))} cookies from {cookie_path}")
    return cookies


def _from_json(content: str, domain: str) -> httpx.Cookies:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Cookie file is not valid JSON: {exc}") from exc

    cookies = httpx.Cookies()
    if isinstance(data, dict):
        for name, value in data.items():
            cookies.set(str(name), str(value), domain=domain)
    elif isinstance(data, list):
        for item in data:
            if isinstance(item, dict) and item.get("name"):
                cookies.set(
                    str(item["name"]),
                    str(item.get("value", "")),
                    domain=str(item.get("domain") or domain),
                    path=str(item.get("path") or "/"),
                )
    return cookies


def _from_netscape(content: str) -> httpx.Cookies:
    cookies = httpx.Cookies()
    for line in content.splitlines():
        line = line.strip()
        if not line or (line.startswith("#") and not line.startswith("#HttpOnly_")):
            continue
        fields = line.split("\t")
        if len(fields) < 7:
            continue
        cookie_domain = fields[0].removeprefix("#HttpOnly_")
        cookies.set(fields[5], fields[6], domain=cookie_domain, path=fields[2] or "/")
    return cookies
