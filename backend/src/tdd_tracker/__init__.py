"""Per-commit development metrics, ingested into a branch history store."""
