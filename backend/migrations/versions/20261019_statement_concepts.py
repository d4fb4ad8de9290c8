"""Add manual income statement concepts

Revision ID: 20261019_concepts
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_concepts"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "income_statement_concepts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("concept_type", sa.String(32), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("recorded_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_income_statement_concepts_amount"),
        sa.CheckConstraint("period_start <= period_end", name="ck_income_statement_concepts_period"),
        sa.ForeignKeyConstraint(["recorded_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("income_statement_concepts", schema=None) as batch_op:
        batch_op.create_index("ix_income_statement_concepts_concept_type", ["concept_type"], unique=False)


def downgrade():
    with op.batch_alter_table("income_statement_concepts", schema=None) as batch_op:
        batch_op.drop_index("ix_income_statement_concepts_concept_type")

    op.drop_table("income_statement_concepts")
