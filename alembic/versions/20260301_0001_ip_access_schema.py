"""Roles, users and IP restriction records.

Revision ID: 0001
Revises:
Create Date: 2026-03-01

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Roles with legacy allow-list patterns
    op.execute("""
        CREATE TABLE IF NOT EXISTS roles (
            id SERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL UNIQUE,
            allowed_ips TEXT[] NOT NULL DEFAULT '{}',
            ip_restricted BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)

    # Users with per-user IP access settings
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            name VARCHAR(255),
            email VARCHAR(255) NOT NULL UNIQUE,
            password_hash VARCHAR(255) NOT NULL,
            role_id INTEGER REFERENCES roles(id) ON DELETE SET NULL,
            ip_exempt BOOLEAN NOT NULL DEFAULT FALSE,
            ip_restricted BOOLEAN NOT NULL DEFAULT FALSE,
            allowed_ips TEXT[] NOT NULL DEFAULT '{}',
            last_login_ip VARCHAR(64),
            last_login_at TIMESTAMP WITH TIME ZONE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email_lower ON users (LOWER(email))")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_role_id ON users (role_id)")

    # Role restriction records
    op.execute("""
        CREATE TABLE IF NOT EXISTS ip_restrictions (
            id SERIAL PRIMARY KEY,
            role_id INTEGER NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
            ip_address VARCHAR(100) NOT NULL,
            description TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_ip_restrictions_role_active "
        "ON ip_restrictions (role_id) WHERE is_active = TRUE"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ip_restrictions")
    op.execute("DROP TABLE IF EXISTS users")
    op.execute("DROP TABLE IF EXISTS roles")
