"""Editor-facing pieces: document handles, edit events and frontmatter helpers."""
