"""Add indexes used by case-judge linking

Revision ID: 001_linking_indexes
Revises:
Create Date: 2026-10-18

The judges and cases tables are owned by ingestion; this revision only
adds the indexes the linking queries rely on:

- a partial index on unlinked case IDs for cursor pagination
- an index on cases.judge_id for per-judge counts and distribution
"""

from typing import Sequence, Union

from alembic import op
from sqlalchemy import inspect

# revision identifiers
revision: str = "001_linking_indexes"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def index_exists(table_name: str, index_name: str) -> bool:
    """Check if an index exists on a table."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return any(ix["name"] == index_name for ix in inspector.get_indexes(table_name))


def upgrade() -> None:
    if not index_exists("cases", "idx_cases_unlinked"):
        op.create_index(
            "idx_cases_unlinked",
            "cases",
            ["id"],
            postgresql_where="judge_id IS NULL",
        )
    if not index_exists("cases", "idx_cases_judge_id"):
        op.create_index("idx_cases_judge_id", "cases", ["judge_id"])


def downgrade() -> None:
    op.drop_index("idx_cases_judge_id", table_name="cases")
    op.drop_index("idx_cases_unlinked", table_name="cases")
