"""
End-to-end engine flows over PostgreSQL storage.
"""

import json

import pytest

from secure_batch.batch.engine import BatchOperationsEngine
from secure_batch.core.errors import AuthorizationError, RateLimitExceeded
from secure_batch.core.models import AuditClassification, BatchStatus
from secure_batch.storage.audit import PostgresAuditStore
from secure_batch.storage.rate_limit_store import PostgresCounterStore
from secure_batch.storage.records import PostgresRecordRepository


@pytest.fixture
def pg_engine(db_pool, permission_resolver, fast_settings, contact_rules):
    return BatchOperationsEngine(
        repository=PostgresRecordRepository(db_pool, source_label="integration"),
        authorization=permission_resolver,
        settings=fast_settings.model_copy(update={"export_daily_limit": 3}),
        rule_engine=contact_rules,
        counter_store=PostgresCounterStore(db_pool),
        audit_store=PostgresAuditStore(db_pool),
        sleep=lambda _: None,
    )


@pytest.mark.integration
class TestEngineOnPostgres:
    """Ingest then export through the database adapters"""

    def test_ingest_then_export(self, pg_engine, sales_rep, viewer):
        records = [
            {"id": f"p-{i:03d}", "name": f"Contact {i}", "email": f"c{i}@example.com",
             "company": "Acme" if i % 2 else "Globex"}
            for i in range(60)
        ]
        records[10].pop("email")

        job = pg_engine.ingest(sales_rep, records)

        assert job.status is BatchStatus.COMPLETED
        assert (job.successful, job.failed) == (59, 1)

        result = pg_engine.export(viewer, ["id", "name"], filters={"company": "Acme"})

        payload = json.loads(pg_engine.resolve_download(result.token.token))
        assert len(payload) == 30
        stored = pg_engine.audit.for_principal(viewer.principal_id)
        assert stored[0].audit_id == result.audit_record.audit_id
        assert stored[0].download_token == result.token.token

    def test_denial_and_rate_limit_are_persisted(self, pg_engine, viewer):
        with pytest.raises(AuthorizationError):
            pg_engine.export(viewer, ["ssn"])
        pg_engine.export(viewer, ["name"])
        pg_engine.export(viewer, ["name"])

        with pytest.raises(RateLimitExceeded):
            pg_engine.export(viewer, ["name"])

        classifications = [r.classification for r in pg_engine.audit.for_principal(viewer.principal_id)]
        assert AuditClassification.DENIED in classifications
        assert AuditClassification.RATE_LIMITED in classifications
