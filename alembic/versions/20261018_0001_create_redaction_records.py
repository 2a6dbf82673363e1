"""Create redaction_records table.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "redaction_records",
        sa.Column("recording_id", sa.String(255), nullable=False),
        # Status
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column(
            "redacted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        # Results
        sa.Column(
            "segments",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("sanitized_text", sa.Text(), nullable=True),
        sa.Column("redacted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Failure detail
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_kind", sa.String(50), nullable=True),
        sa.Column("replace_phase", sa.String(20), nullable=True),
        sa.Column("remote_target_path", sa.Text(), nullable=True),
        sa.Column("remote_temp_path", sa.Text(), nullable=True),
        sa.Column(
            "attempts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("recording_id"),
    )
    op.create_index(
        "ix_redaction_records_status", "redaction_records", ["status"]
    )
    op.create_index(
        "ix_redaction_records_error_kind", "redaction_records", ["error_kind"]
    )


def downgrade() -> None:
    op.drop_index("ix_redaction_records_error_kind", table_name="redaction_records")
    op.drop_index("ix_redaction_records_status", table_name="redaction_records")
    op.drop_table("redaction_records")
