"""Pydantic models for chunks, documents, jobs and API payloads."""
