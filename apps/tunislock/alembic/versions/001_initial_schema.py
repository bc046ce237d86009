"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:00:00.000000

Creates every table from the current models: users, user_profiles, matches,
participants, player_ratings, party_invitations, chat_messages,
notifications and profile_aggregation_jobs, including the case-insensitive
unique indexes on party and display names and the one-goalkeeper-per-team
partial index.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    from tunislock.database.db import Base
    from tunislock.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables."""
    from tunislock.database.db import Base
    from tunislock.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
