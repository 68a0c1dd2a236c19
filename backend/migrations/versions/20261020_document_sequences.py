"""Atomic document number sequences

Revision ID: 20261020_doc_sequences
Revises: 20261019_purchasing
Create Date: 2026-10-20
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261020_doc_sequences"
down_revision = "20261019_purchasing"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_document_sequences_type"),
        sqlite_autoincrement=True,
    )

    # Continue numbering after any return created before sequences existed
    op.execute(
        "INSERT INTO document_sequences (document_type, next_number) "
        "SELECT 'purchase_return', COALESCE(MAX(id), 0) + 1 FROM purchase_returns"
    )


def downgrade():
    op.drop_table("document_sequences")
