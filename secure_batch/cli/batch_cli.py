"""
Command-line interface for secure batch export and ingest.

Usage:
    python -m secure_batch.cli.batch_cli ingest --principal <id> --role <role> --input <file> [options]
    python -m secure_batch.cli.batch_cli export --principal <id> --role <role> --fields a,b --output <file> [options]
    python -m secure_batch.cli.batch_cli permissions --role <role> [options]

Without --db-host the engine runs on in-memory adapters; `--records` seeds
the in-memory record store so exports have something to read.
"""

import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Any

from secure_batch.batch.engine import BatchOperationsEngine
from secure_batch.config.permissions import FieldPermissionLoader
from secure_batch.core.errors import BatchOperationError
from secure_batch.core.models import Principal
from secure_batch.observability import metrics
from secure_batch.observability.logger import get_logger
from secure_batch.security.field_authorization import FieldAuthorizationResolver
from secure_batch.storage.audit import PostgresAuditStore
from secure_batch.storage.connection import DatabaseConnectionPool
from secure_batch.storage.memory import InMemoryRecordRepository
from secure_batch.storage.rate_limit_store import PostgresCounterStore
from secure_batch.storage.records import PostgresRecordRepository

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REJECTED = 2


def read_records(path: str | Path) -> list[dict[str, Any]]:
    """
    Load records from a JSON array or a CSV file with a header row.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a JSON file does not hold an array
    """
    input_path = Path(path)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    if input_path.suffix.lower() == ".csv":
        with open(input_path, newline="", encoding="utf-8") as f:
            return [dict(row) for row in csv.DictReader(f)]

    with open(input_path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of records")
    return data


def parse_filters(pairs: list[str] | None) -> dict[str, str]:
    """Turn repeated key=value options into a filter mapping."""
    filters: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Filter must look like key=value, got {pair!r}")
        filters[key.strip()] = value.strip()
    return filters


def build_engine(args) -> tuple[BatchOperationsEngine, Any]:
    """
    Build the engine for a command.

    Returns:
        (engine, pool) where pool is the open database pool or None
    """
    collaborators: dict[str, Any] = {}
    pool = None

    if args.db_host:
        pool = DatabaseConnectionPool(
            host=args.db_host,
            port=args.db_port,
            database=args.db_name,
            user=args.db_user,
            password=args.db_password,
        )
        pool.open()
        repository = PostgresRecordRepository(pool, source_label=getattr(args, "source_label", None))
        collaborators["counter_store"] = PostgresCounterStore(pool)
        collaborators["audit_store"] = PostgresAuditStore(pool)
    else:
        seed = read_records(args.records) if getattr(args, "records", None) else []
        repository = InMemoryRecordRepository(seed)

    engine = BatchOperationsEngine.from_config(
        repository=repository,
        permissions_path=args.permissions,
        settings_path=args.config if args.config and Path(args.config).exists() else None,
        rules_path=args.validation_rules if args.validation_rules and Path(args.validation_rules).exists() else None,
        env_file=args.env_file,
        **collaborators,
    )
    return engine, pool


def ingest_command(args) -> int:
    principal = Principal(principal_id=args.principal, role=args.role)
    records = read_records(args.input)
    logger.info("Ingesting records", extra={"input": args.input, "count": len(records)})

    engine, pool = build_engine(args)
    try:
        job = engine.ingest(principal, records, source_label=args.source_label)
    finally:
        if pool is not None:
            pool.close()

    print(job.model_dump_json(indent=2))
    return EXIT_OK if not job.has_failures else EXIT_REJECTED


def export_command(args) -> int:
    principal = Principal(principal_id=args.principal, role=args.role)
    fields = [f.strip() for f in args.fields.split(",") if f.strip()]

    engine, pool = build_engine(args)
    try:
        result = engine.export(
            principal,
            fields=fields,
            filters=parse_filters(args.filter),
            format=args.format,
            max_records=args.max_records,
        )
        payload = engine.resolve_download(result.token.token)
    finally:
        if pool is not None:
            pool.close()

    Path(args.output).write_bytes(payload)
    print(json.dumps({
        "output": args.output,
        "records": result.job.successful,
        "bytes": len(payload),
        "audit_id": result.audit_record.audit_id,
        "classification": result.audit_record.classification.value,
        "token_expires_at": result.token.expires_at.isoformat(),
    }, indent=2))
    return EXIT_OK


def permissions_command(args) -> int:
    resolver = FieldAuthorizationResolver(FieldPermissionLoader(args.permissions).load())
    if args.role not in resolver.roles:
        print(f"Unknown role: {args.role} (known roles: {', '.join(resolver.roles) or 'none'})")
        return EXIT_REJECTED

    rows = []
    for permission in resolver.permissions_for_role(args.role):
        rows.append({
            "field": permission.field_name,
            "exportable": permission.exportable,
            "requires_approval": permission.requires_approval,
        })
    print(json.dumps({"role": args.role, "fields": rows}, indent=2))
    return EXIT_OK


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--permissions",
        default="config/field_permissions.yaml",
        help="Path to field permission matrix YAML"
    )
    parser.add_argument(
        "--config",
        default="config/engine.yaml",
        help="Path to engine settings YAML (skipped if missing)"
    )
    parser.add_argument(
        "--validation-rules",
        default="config/validation_rules.yaml",
        help="Path to ingestion validation rules YAML (skipped if missing)"
    )
    parser.add_argument("--env-file", default=None, help="Optional .env file with overrides")
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while the command runs"
    )

    # Database connection arguments
    parser.add_argument("--db-host", default=None, help="Database host; in-memory storage when omitted")
    parser.add_argument("--db-port", type=int, default=5432, help="Database port (default: 5432)")
    parser.add_argument("--db-name", default="secure_batch", help="Database name (default: secure_batch)")
    parser.add_argument("--db-user", default="secure_batch", help="Database user (default: secure_batch)")
    parser.add_argument("--db-password", default=None, help="Database password (or DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Secure batch export and ingest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a JSON file into the in-memory store
  python -m secure_batch.cli.batch_cli ingest --principal u-1 --role editor --input data/users.json

  # Export two fields as CSV from a seeded in-memory store
  python -m secure_batch.cli.batch_cli export --principal u-1 --role viewer \\
      --records data/users.json --fields name,email --format csv --output out.csv

  # Show what a role may export
  python -m secure_batch.cli.batch_cli permissions --role viewer
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser("ingest", help="Validate and store a batch of records")
    ingest_parser.add_argument("--principal", required=True, help="Principal id")
    ingest_parser.add_argument("--role", required=True, help="Principal role")
    ingest_parser.add_argument("--input", required=True, help="JSON array or CSV file of records")
    ingest_parser.add_argument("--source-label", default=None, help="Label stored with the batch")
    _add_common_arguments(ingest_parser)

    export_parser = subparsers.add_parser("export", help="Export authorized fields to a file")
    export_parser.add_argument("--principal", required=True, help="Principal id")
    export_parser.add_argument("--role", required=True, help="Principal role")
    export_parser.add_argument("--fields", required=True, help="Comma-separated field names")
    export_parser.add_argument("--filter", action="append", help="Equality filter key=value (repeatable)")
    export_parser.add_argument("--format", default="json", choices=["csv", "json"], help="Output format")
    export_parser.add_argument("--max-records", type=int, default=1000, help="Maximum records to export")
    export_parser.add_argument("--output", required=True, help="Where to write the export")
    export_parser.add_argument("--records", default=None, help="Seed file for the in-memory record store")
    _add_common_arguments(export_parser)

    permissions_parser = subparsers.add_parser("permissions", help="Show the field matrix for a role")
    permissions_parser.add_argument("--role", required=True, help="Role to show")
    permissions_parser.add_argument(
        "--permissions",
        default="config/field_permissions.yaml",
        help="Path to field permission matrix YAML"
    )

    return parser


COMMANDS = {
    "ingest": ingest_command,
    "export": export_command,
    "permissions": permissions_command,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    if getattr(args, "metrics_port", None):
        metrics.start_metrics_server(args.metrics_port)

    try:
        return COMMANDS[args.command](args)
    except BatchOperationError as e:
        print(f"Rejected ({e.kind}): {e.message}", file=sys.stderr)
        return EXIT_REJECTED
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        logger.error(f"Error during {args.command}: {e}", exc_info=True)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
