"""URL-level helpers: canonicalization, validation, classification and static detection."""
