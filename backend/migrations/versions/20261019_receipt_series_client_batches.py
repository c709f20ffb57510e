"""Receipt numbering series, challan doc_type, client batches

Revision ID: 20261019_receipts_batches
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_receipts_batches"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    # Counters are keyed by series (GST, NON_GST, RECEIPT) instead of tax type
    with op.batch_alter_table("challan_counters", schema=None) as batch_op:
        batch_op.drop_constraint("uq_challan_counters_fy_tax", type_="unique")
        batch_op.alter_column("tax_type", new_column_name="series", existing_type=sa.String(16), existing_nullable=False)
        batch_op.create_unique_constraint("uq_challan_counters_fy_series", ["financial_year", "series"])

    with op.batch_alter_table("challans", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("doc_type", sa.String(32), nullable=False, server_default="OUTWARD_CHALLAN")
        )
        batch_op.drop_constraint("uq_challans_fy_tax_seq", type_="unique")
        batch_op.create_unique_constraint(
            "uq_challans_fy_doc_tax_seq", ["financial_year", "doc_type", "tax_type", "sequence"]
        )
        batch_op.create_index("ix_challans_doc_type", ["doc_type"], unique=False)

    # Inward documents issued before this revision keep their numbers but are receipts
    op.execute("UPDATE challans SET doc_type = 'STOCK_INWARD_RECEIPT' WHERE inventory_mode = 'inward'")

    op.create_table(
        "client_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(120), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("audit_ids", sa.JSON(), nullable=False),
        sa.Column("line_overrides", sa.JSON(), nullable=False),
        sa.Column("manual_items", sa.JSON(), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=True),
        sa.Column("client_address", sa.Text(), nullable=True),
        sa.Column("client_mobile", sa.String(32), nullable=True),
        sa.Column("client_gst_number", sa.String(32), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("challan_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["challan_id"], ["challans.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("client_batches", schema=None) as batch_op:
        batch_op.create_index("ix_client_batches_status", ["status"], unique=False)
        batch_op.create_index("ix_client_batches_challan_id", ["challan_id"], unique=False)
        batch_op.create_index("ix_client_batches_created_by_user_id", ["created_by_user_id"], unique=False)
        batch_op.create_index("ix_client_batches_status_created", ["status", "created_at"], unique=False)


def downgrade():
    op.drop_table("client_batches")

    with op.batch_alter_table("challans", schema=None) as batch_op:
        batch_op.drop_index("ix_challans_doc_type")
        batch_op.drop_constraint("uq_challans_fy_doc_tax_seq", type_="unique")
        batch_op.create_unique_constraint("uq_challans_fy_tax_seq", ["financial_year", "tax_type", "sequence"])
        batch_op.drop_column("doc_type")

    op.execute("DELETE FROM challan_counters WHERE series = 'RECEIPT'")
    with op.batch_alter_table("challan_counters", schema=None) as batch_op:
        batch_op.drop_constraint("uq_challan_counters_fy_series", type_="unique")
        batch_op.alter_column("series", new_column_name="tax_type", existing_type=sa.String(16), existing_nullable=False)
        batch_op.create_unique_constraint("uq_challan_counters_fy_tax", ["financial_year", "tax_type"])
