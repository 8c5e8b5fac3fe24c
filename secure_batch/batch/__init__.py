"""
Batch execution: chunked fan-out, job tracking, export serialization and
the engine that ties the security gates together.
"""

from .chunk_processor import ChunkProcessor
from .engine import BatchOperationsEngine, ExportResult
from .job_tracker import BatchJobTracker

__all__ = ["BatchOperationsEngine", "BatchJobTracker", "ChunkProcessor", "ExportResult"]
