"""create catalog entities

Revision ID: 0001a2b3c4d5
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001a2b3c4d5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "catalog_entities",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("entity_type", sa.String(length=20), nullable=False),
        sa.Column("place_id", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column(
            "extraction_status",
            sa.String(length=20),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "extraction_progress",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("failed_step", sa.String(length=100), nullable=True),
        sa.Column(
            "data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_type", "place_id", name="uq_catalog_entities_type_place"),
    )
    op.create_index("ix_catalog_entities_entity_type", "catalog_entities", ["entity_type"])
    op.create_index("ix_catalog_entities_slug", "catalog_entities", ["slug"])
    op.create_index(
        "ix_catalog_entities_type_status",
        "catalog_entities",
        ["entity_type", "extraction_status"],
    )


def downgrade() -> None:
    op.drop_index("ix_catalog_entities_type_status", table_name="catalog_entities")
    op.drop_index("ix_catalog_entities_slug", table_name="catalog_entities")
    op.drop_index("ix_catalog_entities_entity_type", table_name="catalog_entities")
    op.drop_table("catalog_entities")
