"""Service layer helpers (settings, host protocols, Markdown vault)."""
