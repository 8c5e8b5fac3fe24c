"""
Unit tests for the batch CLI (in-memory mode).
"""

import json

import pytest

from secure_batch.cli import batch_cli
from secure_batch.cli.batch_cli import build_engine, build_parser, main, parse_filters, read_records
from secure_batch.storage.audit import PostgresAuditStore


@pytest.fixture
def config_args(config_dir):
    return [
        "--permissions", f"{config_dir}/field_permissions.yaml",
        "--config", f"{config_dir}/engine.yaml",
        "--validation-rules", f"{config_dir}/validation_rules.yaml",
    ]


@pytest.fixture
def records_file(tmp_path):
    path = tmp_path / "contacts.json"
    path.write_text(json.dumps([
        {"id": "c-1", "name": "Ana", "email": "ana@example.com", "company": "Acme", "ssn": "000-00-0001"},
        {"id": "c-2", "name": "Bo", "email": "bo@example.com", "company": "Globex", "ssn": "000-00-0002"},
    ]))
    return path


class TestReadRecords:
    """Tests for read_records"""

    def test_json(self, records_file):
        assert [r["id"] for r in read_records(records_file)] == ["c-1", "c-2"]

    def test_csv(self, tmp_path):
        path = tmp_path / "contacts.csv"
        path.write_text("name,email\nAna,ana@example.com\n")
        assert read_records(path) == [{"name": "Ana", "email": "ana@example.com"}]

    def test_json_must_be_array(self, tmp_path):
        path = tmp_path / "one.json"
        path.write_text('{"name": "Ana"}')
        with pytest.raises(ValueError, match="JSON array"):
            read_records(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_records(tmp_path / "absent.json")


class TestParseFilters:
    """Tests for parse_filters"""

    def test_pairs(self):
        assert parse_filters(["company=Acme", " region = west "]) == {"company": "Acme", "region": "west"}

    def test_none(self):
        assert parse_filters(None) == {}

    def test_malformed(self):
        with pytest.raises(ValueError, match="key=value"):
            parse_filters(["company"])


class TestMain:
    """Tests for the CLI commands"""

    def test_no_command(self):
        assert main([]) == 1

    def test_permissions(self, config_dir, capsys):
        code = main(["permissions", "--role", "viewer", "--permissions", f"{config_dir}/field_permissions.yaml"])

        assert code == 0
        out = capsys.readouterr().out
        assert '"role": "viewer"' in out
        assert '"field": "ssn"' in out

    def test_permissions_unknown_role(self, config_dir, capsys):
        code = main(["permissions", "--role", "intern", "--permissions", f"{config_dir}/field_permissions.yaml"])

        assert code == 2
        assert "Unknown role: intern" in capsys.readouterr().out

    def test_ingest(self, config_args, records_file):
        code = main([
            "ingest", "--principal", "user-sales", "--role", "sales",
            "--input", str(records_file), "--source-label", "crm-import", *config_args,
        ])
        assert code == 0

    def test_ingest_with_invalid_record(self, config_args, tmp_path):
        path = tmp_path / "contacts.json"
        path.write_text(json.dumps([{"name": "Ana", "email": "ana@example.com"}, {"name": "Bo"}]))

        code = main(["ingest", "--principal", "user-sales", "--role", "sales", "--input", str(path), *config_args])

        assert code == 2

    def test_export(self, config_args, records_file, tmp_path):
        output = tmp_path / "out.csv"

        code = main([
            "export", "--principal", "user-viewer", "--role", "viewer",
            "--records", str(records_file), "--fields", "name,company",
            "--filter", "company=Acme", "--format", "csv", "--output", str(output), *config_args,
        ])

        assert code == 0
        assert output.read_text() == "name,company\nAna,Acme\n"

    def test_export_denied_field(self, config_args, records_file, tmp_path, capsys):
        output = tmp_path / "out.json"

        code = main([
            "export", "--principal", "user-viewer", "--role", "viewer",
            "--records", str(records_file), "--fields", "name,ssn", "--output", str(output), *config_args,
        ])

        assert code == 2
        assert not output.exists()
        assert "Rejected (authorization)" in capsys.readouterr().err

    def test_missing_input(self, config_args, tmp_path, capsys):
        code = main([
            "ingest", "--principal", "user-sales", "--role", "sales",
            "--input", str(tmp_path / "absent.json"), *config_args,
        ])

        assert code == 1
        assert "Input file not found" in capsys.readouterr().err


class FakePool:
    """Stands in for DatabaseConnectionPool; records how it was built."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.opened = False

    def open(self):
        self.opened = True


class TestBuildEngine:
    """Tests for build_engine in database mode"""

    def test_database_audit_recorder_uses_settings(self, config_args, tmp_path, monkeypatch):
        monkeypatch.setattr(batch_cli, "DatabaseConnectionPool", FakePool)
        monkeypatch.setenv("SECURE_BATCH_AUDIT_WRITE_RETRIES", "5")
        monkeypatch.setenv("SECURE_BATCH_RETRY_DELAY_SECONDS", "0.5")
        args = build_parser().parse_args([
            "ingest", "--principal", "user-sales", "--role", "sales",
            "--input", str(tmp_path / "contacts.json"), "--source-label", "crm",
            "--db-host", "db.internal", "--db-password", "secret", *config_args,
        ])

        engine, pool = build_engine(args)

        assert pool.opened
        assert pool.kwargs["host"] == "db.internal"
        assert isinstance(engine.audit.store, PostgresAuditStore)
        assert engine.audit.store.pool is pool
        assert engine.audit.write_retries == engine.settings.audit_write_retries == 5
        assert engine.audit.retry_delay == engine.settings.retry_delay_seconds == 0.5
        assert engine.repository.source_label == "crm"
