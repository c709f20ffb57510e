"""Initial stockbook schema: boxes, colour stock, movement audits, challans

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "boxes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("colours", sa.JSON(), nullable=False),
        sa.Column("price_paise", sa.Integer(), nullable=True),
        sa.Column("assembly_charge_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("inner_size", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("boxes", schema=None) as batch_op:
        batch_op.create_index("ix_boxes_code", ["code"], unique=True)
        batch_op.create_index("ix_boxes_category_title", ["category", "title"], unique=False)

    op.create_table(
        "box_color_stock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("box_id", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["box_id"], ["boxes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("box_id", "color", name="uq_box_color_stock_box_color"),
        sa.CheckConstraint("quantity >= 0", name="ck_box_color_stock_non_negative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("box_color_stock", schema=None) as batch_op:
        batch_op.create_index("ix_box_color_stock_box_id", ["box_id"], unique=False)

    op.create_table(
        "challan_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("financial_year", sa.String(5), nullable=False),
        sa.Column("tax_type", sa.String(16), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("financial_year", "tax_type", name="uq_challan_counters_fy_tax"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("challan_counters", schema=None) as batch_op:
        batch_op.create_index("ix_challan_counters_financial_year", ["financial_year"], unique=False)

    op.create_table(
        "challans",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("financial_year", sa.String(5), nullable=False),
        sa.Column("tax_type", sa.String(16), nullable=False, server_default="GST"),
        sa.Column("inventory_mode", sa.String(16), nullable=False, server_default="dispatch"),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("items_subtotal_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assembly_total_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("packaging_charges_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("pre_discount_subtotal_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("taxable_subtotal_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("gst_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("gst_amount_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_before_round_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("round_off_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("grand_total_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("client_name", sa.String(255), nullable=True),
        sa.Column("client_address", sa.Text(), nullable=True),
        sa.Column("client_mobile", sa.String(32), nullable=True),
        sa.Column("client_gst_number", sa.String(32), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("hsn_code", sa.String(16), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("financial_year", "tax_type", "sequence", name="uq_challans_fy_tax_seq"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("challans", schema=None) as batch_op:
        batch_op.create_index("ix_challans_number", ["number"], unique=True)
        batch_op.create_index("ix_challans_sequence", ["sequence"], unique=False)
        batch_op.create_index("ix_challans_financial_year", ["financial_year"], unique=False)
        batch_op.create_index("ix_challans_tax_type", ["tax_type"], unique=False)
        batch_op.create_index("ix_challans_inventory_mode", ["inventory_mode"], unique=False)
        batch_op.create_index("ix_challans_status", ["status"], unique=False)
        batch_op.create_index("ix_challans_client_name", ["client_name"], unique=False)
        batch_op.create_index("ix_challans_client_mobile", ["client_mobile"], unique=False)
        batch_op.create_index("ix_challans_created_by_user_id", ["created_by_user_id"], unique=False)
        batch_op.create_index("ix_challans_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_challans_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "box_audits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("box_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("color", sa.String(64), nullable=True),
        sa.Column("action", sa.String(32), nullable=False, server_default="subtract"),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("challan_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["box_id"], ["boxes.id"]),
        sa.ForeignKeyConstraint(["challan_id"], ["challans.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity >= 0", name="ck_box_audits_quantity_non_negative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("box_audits", schema=None) as batch_op:
        batch_op.create_index("ix_box_audits_box_id", ["box_id"], unique=False)
        batch_op.create_index("ix_box_audits_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_box_audits_action", ["action"], unique=False)
        batch_op.create_index("ix_box_audits_used", ["used"], unique=False)
        batch_op.create_index("ix_box_audits_challan_id", ["challan_id"], unique=False)
        batch_op.create_index("ix_box_audits_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_box_audits_used_created", ["used", "created_at"], unique=False)
        batch_op.create_index("ix_box_audits_box_used", ["box_id", "used"], unique=False)

    op.create_table(
        "challan_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("challan_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("audit_id", sa.Integer(), nullable=True),
        sa.Column("manual_entry", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("box_id", sa.Integer(), nullable=False),
        sa.Column("box_title", sa.String(255), nullable=True),
        sa.Column("box_code", sa.String(64), nullable=True),
        sa.Column("box_category", sa.String(120), nullable=True),
        sa.Column("cavity", sa.String(64), nullable=True),
        sa.Column("color", sa.String(64), nullable=True),
        sa.Column("colours", sa.JSON(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("rate_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assembly_charge_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("packaging_charge_paise", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("audited_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["challan_id"], ["challans.id"]),
        sa.ForeignKeyConstraint(["audit_id"], ["box_audits.id"]),
        sa.ForeignKeyConstraint(["box_id"], ["boxes.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("audit_id", name="uq_challan_items_audit"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("challan_items", schema=None) as batch_op:
        batch_op.create_index("ix_challan_items_challan_id", ["challan_id"], unique=False)
        batch_op.create_index("ix_challan_items_box_id", ["box_id"], unique=False)


def downgrade():
    op.drop_table("challan_items")
    op.drop_table("box_audits")
    op.drop_table("challans")
    op.drop_table("challan_counters")
    op.drop_table("box_color_stock")
    op.drop_table("boxes")
