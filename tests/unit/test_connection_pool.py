"""
Unit tests for database connection pool

Construction checks run without a database; the rest use testcontainers.
"""
import pytest

from secure_batch.storage.connection import DatabaseConnectionPool


def test_password_is_required(monkeypatch):
    """Test that a pool without a password is rejected"""
    monkeypatch.delenv("DB_PASSWORD", raising=False)

    with pytest.raises(ValueError, match="password"):
        DatabaseConnectionPool(host="localhost")


def test_conninfo_from_environment(monkeypatch):
    """Test that connection settings fall back to DB_* variables"""
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_PASSWORD", "secret")

    pool = DatabaseConnectionPool()

    assert "host=db.internal" in pool.conninfo
    assert "port=6543" in pool.conninfo
    assert "dbname=secure_batch" in pool.conninfo
    assert not pool.is_open


def test_connection_requires_open_pool():
    pool = DatabaseConnectionPool(conninfo="host=localhost dbname=secure_batch")

    with pytest.raises(RuntimeError, match="not open"):
        with pool.get_connection():
            pass


@pytest.mark.integration
def test_open_and_query(postgres_container):
    """Test opening the pool and running a query"""
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_secure_batch",
        user="test_secure_batch",
        password="test_password",
        min_size=1,
        max_size=3,
    )

    with pool:
        assert pool.is_open
        result = pool.execute_query("SELECT 42 as answer")
        assert result[0]["answer"] == 42

    assert not pool.is_open


@pytest.mark.integration
def test_execute_returning_and_command(db_pool):
    """Test write helpers commit their changes"""
    row = db_pool.execute_returning(
        "INSERT INTO records (record_id, data) VALUES (%s, '{}'::jsonb) RETURNING record_id",
        ("r-1",),
    )
    assert row["record_id"] == "r-1"

    affected = db_pool.execute_command("UPDATE records SET source_label = 'x' WHERE record_id = %s", ("r-1",))
    assert affected == 1
