"""Tests for Alembic migrations — structure validation.

No PostgreSQL in CI, so these check file layout and the tables/columns the
restriction store queries.
"""
import re
from pathlib import Path

import pytest

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent.parent.parent / "alembic" / "versions"


def _migration_files():
    return sorted(MIGRATIONS_DIR.glob("*.py"))


class TestMigrationFiles:

    def test_migrations_exist(self):
        assert MIGRATIONS_DIR.exists(), f"Migrations dir not found: {MIGRATIONS_DIR}"
        assert _migration_files(), "No migration files found"

    def test_file_naming_convention(self):
        """All migration files should follow YYYYMMDD_NNNN_slug format."""
        pattern = re.compile(r"^\d{8}_\d{4}_.+\.py$")
        for f in _migration_files():
            assert pattern.match(f.name), f"'{f.name}' doesn't match YYYYMMDD_NNNN_slug.py"

    def test_upgrade_and_downgrade_defined(self):
        for f in _migration_files():
            content = f.read_text()
            assert "down_revision" in content
            assert "def upgrade()" in content, f"{f.name} missing upgrade()"
            assert "def downgrade()" in content, f"{f.name} missing downgrade()"


class TestInitialSchema:

    @pytest.fixture()
    def sql(self):
        return (MIGRATIONS_DIR / "20260301_0001_ip_access_schema.py").read_text()

    @pytest.mark.parametrize("table", ["roles", "users", "ip_restrictions"])
    def test_tables(self, sql, table):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql

    @pytest.mark.parametrize("column", [
        "ip_exempt", "ip_restricted", "allowed_ips", "last_login_ip", "last_login_at", "is_active",
    ])
    def test_ip_columns(self, sql, column):
        assert column in sql

    def test_restrictions_cascade_with_role(self, sql):
        assert "REFERENCES roles(id) ON DELETE CASCADE" in sql
