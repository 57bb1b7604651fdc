"""Small shared helpers (env parsing, debug logging)."""
