"""Worker pool, rate limiting, retries and process signals."""
