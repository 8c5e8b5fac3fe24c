"""
Engine configuration.

Settings come from three layers, later ones winning:
1. EngineSettings defaults
2. The `engine:` section of a YAML file
3. SECURE_BATCH_<FIELD> environment variables (optionally loaded from a .env file)
"""
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

ENV_PREFIX = "SECURE_BATCH_"


class EngineSettings(BaseModel):
    """
    Tunables for the batch operations engine.

    Attributes:
        export_daily_limit: Exports allowed per principal per UTC day
        ingest_daily_limit: Ingest batches allowed per principal per UTC day
        chunk_size: Items per chunk
        max_concurrency: Chunks processed at the same time
        max_export_records: Upper bound for ExportRequest.max_records
        max_ingest_records: Upper bound on records per ingest batch
        max_item_retries: Retries per item after a repository/storage failure
        retry_delay_seconds: Pause between those attempts
        token_ttl_hours: Lifetime of a download token
        audit_write_retries: Retries for a failed audit write
        bulk_record_cutoff: Record count above which an operation counts as "large"
        bulk_operation_threshold: Large operations in 24h above which bulk_pattern is flagged
        burst_operation_threshold: Operations in 5 minutes above which burst_pattern is flagged
        max_text_length: Longest free-text value accepted on ingest (exports truncate to it)
        job_retention_hours: How long finished batch jobs stay queryable
        field_types: Field name -> sanitizer type (email, phone, text)
    """

    export_daily_limit: int = Field(10, gt=0)
    ingest_daily_limit: int = Field(50, gt=0)
    chunk_size: int = Field(50, gt=0)
    max_concurrency: int = Field(4, gt=0, le=64)
    max_export_records: int = Field(10000, gt=0)
    max_ingest_records: int = Field(10000, gt=0)
    max_item_retries: int = Field(3, ge=1)
    retry_delay_seconds: float = Field(0.2, ge=0.0)
    token_ttl_hours: int = Field(24, gt=0)
    audit_write_retries: int = Field(3, ge=1)
    bulk_record_cutoff: int = Field(1000, ge=0)
    bulk_operation_threshold: int = Field(3, ge=0)
    burst_operation_threshold: int = Field(10, ge=0)
    max_text_length: int = Field(1000, gt=0)
    job_retention_hours: int = Field(24, gt=0)
    field_types: dict[str, str] = Field(default_factory=dict)


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in EngineSettings.model_fields:
        if name == "field_types":
            continue
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None:
            overrides[name] = raw
    return overrides


def load_settings(path: str | Path | None = None, env_file: str | Path | None = None) -> EngineSettings:
    """
    Load engine settings.

    Args:
        path: Optional YAML file with an `engine:` section
        env_file: Optional .env file loaded into the environment first

    Returns:
        Validated EngineSettings

    Raises:
        FileNotFoundError: If `path` is given but does not exist
        ValueError: If any setting is invalid
    """
    if env_file is not None and Path(env_file).exists():
        load_dotenv(env_file, override=True)

    values: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
        section = config.get("engine", {}) or {}
        if not isinstance(section, dict):
            raise ValueError("'engine' section must be a mapping")
        values.update(section)

    values.update(_env_overrides())

    try:
        return EngineSettings(**values)
    except PydanticValidationError as e:
        raise ValueError(f"Invalid engine settings: {e}") from e
