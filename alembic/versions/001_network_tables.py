"""Garden Network: profiles, connections, challenges, participation.

The classrooms, towers and harvests tables already exist (owned by the
classroom management app); this migration only adds the network tables.

Revision ID: 001_network_tables
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_network_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Network profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS classroom_network_settings (
            id VARCHAR(36) PRIMARY KEY,
            classroom_id VARCHAR(36) NOT NULL UNIQUE REFERENCES classrooms(id) ON DELETE CASCADE,
            is_network_enabled BOOLEAN NOT NULL DEFAULT false,
            visibility VARCHAR(16) NOT NULL DEFAULT 'public'
                CHECK (visibility IN ('public', 'network_only', 'invite_only')),
            share_harvest_data BOOLEAN NOT NULL DEFAULT true,
            share_photos BOOLEAN NOT NULL DEFAULT false,
            share_growth_tips BOOLEAN NOT NULL DEFAULT true,
            display_name VARCHAR(100),
            bio VARCHAR(500),
            region VARCHAR(100),
            grade_level VARCHAR(50),
            school_type VARCHAR(16)
                CHECK (school_type IN ('elementary', 'middle', 'high', 'college', 'other')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_network_settings_discoverable
        ON classroom_network_settings(visibility)
        WHERE is_network_enabled
    """)

    # --- Connections (one row per unordered classroom pair) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS classroom_connections (
            id VARCHAR(36) PRIMARY KEY,
            requester_classroom_id VARCHAR(36) NOT NULL REFERENCES classrooms(id) ON DELETE CASCADE,
            target_classroom_id VARCHAR(36) NOT NULL REFERENCES classrooms(id) ON DELETE CASCADE,
            pair_low VARCHAR(36) NOT NULL,
            pair_high VARCHAR(36) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'declined', 'blocked')),
            connection_type VARCHAR(16) NOT NULL DEFAULT 'collaboration'
                CHECK (connection_type IN ('competition', 'collaboration', 'mentorship')),
            message TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            accepted_at TIMESTAMPTZ,
            CONSTRAINT uq_classroom_connections_pair UNIQUE (pair_low, pair_high),
            CONSTRAINT ck_classroom_connections_pair_order CHECK (pair_low < pair_high),
            CONSTRAINT ck_classroom_connections_not_self CHECK (requester_classroom_id <> target_classroom_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_classroom_connections_requester
        ON classroom_connections(requester_classroom_id, status)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_classroom_connections_target
        ON classroom_connections(target_classroom_id, status)
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS network_challenges (
            id VARCHAR(36) PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            challenge_type VARCHAR(16) NOT NULL
                CHECK (challenge_type IN ('harvest', 'growth', 'innovation')),
            start_date DATE NOT NULL,
            end_date DATE NOT NULL,
            goal_description TEXT,
            rewards JSONB NOT NULL DEFAULT '[]',
            is_active BOOLEAN NOT NULL DEFAULT true,
            closed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_network_challenges_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_network_challenges_active
        ON network_challenges(end_date)
        WHERE is_active
    """)

    # --- Participation ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS classroom_challenge_participation (
            id VARCHAR(36) PRIMARY KEY,
            classroom_id VARCHAR(36) NOT NULL REFERENCES classrooms(id) ON DELETE CASCADE,
            challenge_id VARCHAR(36) NOT NULL REFERENCES network_challenges(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            final_score DOUBLE PRECISION,
            rank INTEGER,
            CONSTRAINT uq_challenge_participation_classroom_challenge UNIQUE (classroom_id, challenge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenge_participation_challenge
        ON classroom_challenge_participation(challenge_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS classroom_challenge_participation")
    op.execute("DROP TABLE IF EXISTS network_challenges")
    op.execute("DROP TABLE IF EXISTS classroom_connections")
    op.execute("DROP TABLE IF EXISTS classroom_network_settings")
