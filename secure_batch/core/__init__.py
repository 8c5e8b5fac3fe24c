"""Core models, errors and ingestion validation."""
