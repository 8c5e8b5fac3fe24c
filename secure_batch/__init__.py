"""Secure batch data operations engine: field-authorized bulk export and chunked bulk ingest."""

__version__ = "0.1.0"
