"""Dictionary of common application paths requested on the target origin.

The paths are submitted like any other passive URL, so scope and dedup
rules still apply; the crawler records the ones that answer with a
status in :data:`HIDDEN_PATH_STATUSES` as hidden paths.
"""

from __future__ import annotations

from collections.abc import Iterable


# 401/403/500 mean something is mounted there even if it refuses us
HIDDEN_PATH_STATUSES = frozenset({200, 301, 302, 401, 403, 500})

COMMON_PATHS: tuple[str, ...] = (
    # Authentication and accounts
    "/login", "/login.php", "/signin", "/logout", "/register", "/signup",
    "/account", "/profile", "/user", "/users", "/dashboard", "/settings",
    "/password", "/forgot-password", "/reset-password",
    # APIs
    "/api", "/api/v1", "/api/v2", "/api/v3", "/rest", "/graphql", "/query",
    "/api/user", "/api/users", "/api/auth", "/api/login", "/api/session",
    "/api/admin", "/swagger", "/swagger-ui", "/api-docs", "/openapi.json",
    # Administration
    "/admin", "/admin/login", "/admin/dashboard", "/administrator", "/manage",
    "/manager", "/management", "/console", "/control", "/panel", "/backend",
    "/backoffice", "/wp-admin", "/wp-login.php", "/cms", "/cpanel",
    "/phpmyadmin", "/webmin",
    # Files and uploads
    "/upload", "/uploads", "/download", "/downloads", "/files", "/filemanager",
    "/media", "/documents", "/attachments", "/storage",
    # Configuration and environment
    "/config", "/setup", "/install", "/.env", "/.env.local", "/config.php",
    "/config.json", "/config.yml", "/settings.json", "/web.config",
    "/application.properties", "/application.yml",
    # Source control and project files
    "/.git/config", "/.git/HEAD", "/.svn/entries", "/.hg/hgrc", "/.DS_Store",
    "/composer.json", "/package.json", "/.well-known/security.txt",
    # Backups and dumps
    "/backup", "/backups", "/backup.zip", "/backup.sql", "/database.sql",
    "/dump.sql", "/site.zip", "/www.zip",
    # System information
    "/info", "/phpinfo.php", "/info.php", "/server-status", "/server-info",
    "/status", "/health", "/ping", "/version", "/metrics", "/actuator",
    "/actuator/health", "/debug", "/trace",
    # Security
    "/auth", "/oauth", "/oauth2", "/sso", "/token", "/session", "/verify",
    "/captcha", "/2fa",
    # Development and testing
    "/dev", "/test", "/testing", "/demo", "/staging", "/beta", "/tmp",
    "/internal", "/private", "/hidden",
    # Operations
    "/logs", "/log", "/monitor", "/stats", "/analytics", "/report", "/reports",
    "/export", "/import", "/webhook", "/callback", "/cron", "/jobs", "/queue",
)


def common_path_urls(origin: str, paths: Iterable[str] = COMMON_PATHS) -> list[str]:
    """Absolute URLs for ``paths`` on ``origin`` (``scheme://host[:port]``)."""
    base = origin.rstrip("/")
    urls: list[str] = []
    seen: set[str] = set()
    for path in paths:
        url = f"{base}/{path.lstrip('/')}"
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls
