"""Workers that run ingestion and deletion jobs."""
