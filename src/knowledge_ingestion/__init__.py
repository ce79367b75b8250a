"""Knowledge Ingestion service: document ingestion and retrieval pipeline."""

__version__ = "0.1.0"
