"""Per-file ingestion pipeline and batch processing."""
