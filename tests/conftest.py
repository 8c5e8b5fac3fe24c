"""
Pytest configuration and fixtures for secure-batch tests

Provides a frozen clock, in-memory collaborators, an engine factory and a
PostgreSQL testcontainer for integration tests.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from secure_batch.batch.engine import BatchOperationsEngine
from secure_batch.config.permissions import parse_permissions
from secure_batch.config.settings import EngineSettings
from secure_batch.core.models import Principal
from secure_batch.core.rules import RuleConfigBuilder, RuleEngine
from secure_batch.security.field_authorization import FieldAuthorizationResolver
from secure_batch.storage.memory import InMemoryRecordRepository

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# TIME
# =======================

class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


@pytest.fixture
def frozen_clock() -> FrozenClock:
    """Clock pinned to 2024-03-15 12:00 UTC"""
    return FrozenClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


# =======================
# DOMAIN FIXTURES
# =======================

PERMISSION_MATRIX = {
    "viewer": {
        "id": True,
        "name": True,
        "company": True,
        "email": False,
        "ssn": False,
    },
    "sales": {
        "id": True,
        "name": True,
        "company": True,
        "email": True,
        "phone": True,
        "notes": True,
        "ssn": False,
    },
    "manager": {
        "id": True,
        "name": True,
        "email": True,
        "ssn": {"exportable": True, "requires_approval": True},
    },
}


@pytest.fixture
def permission_resolver() -> FieldAuthorizationResolver:
    return FieldAuthorizationResolver(parse_permissions(PERMISSION_MATRIX))


@pytest.fixture
def viewer() -> Principal:
    return Principal(principal_id="user-viewer", role="viewer")


@pytest.fixture
def sales_rep() -> Principal:
    return Principal(principal_id="user-sales", role="sales")


@pytest.fixture
def manager() -> Principal:
    return Principal(principal_id="user-manager", role="manager")


@pytest.fixture
def sample_records() -> list[dict]:
    """Twenty stored contacts"""
    return [
        {
            "id": f"c-{i:03d}",
            "name": f"Contact {i}",
            "email": f"contact{i}@example.com",
            "phone": f"+1 555 010 {i:04d}",
            "company": "Acme" if i % 2 == 0 else "Globex",
            "ssn": f"000-00-{i:04d}",
            "notes": "regular customer",
        }
        for i in range(20)
    ]


@pytest.fixture
def contact_rules() -> RuleEngine:
    """Ingestion rules: name required, email required and well-formed"""
    rules = (
        RuleConfigBuilder()
        .add_required_field("name")
        .add_required_field("email")
        .add_email("email")
        .build()
    )
    return RuleEngine(rules)


@pytest.fixture
def fast_settings() -> EngineSettings:
    """Settings with no retry sleeps and small chunks"""
    return EngineSettings(
        chunk_size=50,
        max_concurrency=2,
        retry_delay_seconds=0.0,
        max_item_retries=2,
    )


@pytest.fixture
def engine_factory(permission_resolver, frozen_clock, fast_settings):
    """
    Build engines over in-memory collaborators

    Usage:
        engine = engine_factory(records=[...], settings=..., rule_engine=...)
    """
    def _build(records: list[dict] | None = None, repository=None, settings=None, **kwargs):
        return BatchOperationsEngine(
            repository=repository if repository is not None else InMemoryRecordRepository(records or []),
            authorization=kwargs.pop("authorization", permission_resolver),
            settings=settings or fast_settings,
            clock=kwargs.pop("clock", frozen_clock),
            sleep=kwargs.pop("sleep", lambda _: None),
            **kwargs,
        )

    return _build


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        PostgresContainer instance with the schema from docker/init-db.sql applied
    """
    testcontainers_postgres = pytest.importorskip("testcontainers.postgres")
    import psycopg

    container = testcontainers_postgres.PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_secure_batch",
        password="test_password",
        dbname="test_secure_batch",
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        init_sql_path = os.path.join(PROJECT_ROOT, "docker", "init-db.sql")
        with open(init_sql_path) as f:
            init_sql = f.read()

        with psycopg.connect(postgres_conninfo(container)) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


def postgres_conninfo(container) -> str:
    return (
        f"host={container.get_container_host_ip()} "
        f"port={container.get_exposed_port(5432)} "
        f"dbname=test_secure_batch user=test_secure_batch password=test_password"
    )


@pytest.fixture
def db_pool(postgres_container) -> Generator:
    """
    Open connection pool over a clean database

    Yields:
        DatabaseConnectionPool with empty tables
    """
    from secure_batch.storage.connection import DatabaseConnectionPool

    pool = DatabaseConnectionPool(conninfo=postgres_conninfo(postgres_container), max_size=4)
    pool.open()
    pool.execute_script("TRUNCATE TABLE records, audit_record, rate_limit_counter")
    try:
        yield pool
    finally:
        pool.close()


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Load config/test.env into the environment
    """
    from dotenv import load_dotenv

    env_path = os.path.join(PROJECT_ROOT, "config", "test.env")
    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)


@pytest.fixture(scope="session")
def config_dir() -> str:
    return os.path.join(PROJECT_ROOT, "config")
