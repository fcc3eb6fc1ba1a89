"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "biomarker_reference",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("standard_name", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("common_aliases", sa.Text(), nullable=False),
        sa.Column("eu_unit", sa.String(length=50), nullable=True),
        sa.Column("us_unit", sa.String(length=50), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_biomarker_reference_category", "biomarker_reference", ["category"], unique=False)
    op.create_index("ix_biomarker_reference_standard_name", "biomarker_reference", ["standard_name"], unique=True)

    op.create_table(
        "lab_reports",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("source_file_name", sa.String(length=255), nullable=False),
        sa.Column("test_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("dosage_mg_per_week", sa.Float(), nullable=True),
        sa.Column("protocol", sa.Text(), nullable=False),
        sa.Column("supplements", sa.Text(), nullable=False),
        sa.Column("symptoms", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("sampling_timing", sa.String(length=20), nullable=False),
        sa.Column("extraction_provider", sa.String(length=20), nullable=False),
        sa.Column("extraction_model", sa.String(length=100), nullable=False),
        sa.Column("extraction_confidence", sa.Float(), nullable=False),
        sa.Column("needs_review", sa.Boolean(), nullable=False),
        sa.Column("is_baseline", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lab_reports_test_date", "lab_reports", ["test_date"], unique=False)

    op.create_table(
        "marker_values",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("report_id", sa.String(length=36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("marker", sa.String(length=255), nullable=False),
        sa.Column("canonical_marker", sa.String(length=255), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=50), nullable=False),
        sa.Column("reference_min", sa.Float(), nullable=True),
        sa.Column("reference_max", sa.Float(), nullable=True),
        sa.Column("abnormal", sa.String(length=20), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["report_id"], ["lab_reports.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_marker_values_report_id", "marker_values", ["report_id"], unique=False)
    op.create_index("ix_marker_values_canonical_marker", "marker_values", ["canonical_marker"], unique=False)

    op.create_table(
        "app_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("unit_system", sa.String(length=2), nullable=False),
        sa.Column("language", sa.String(length=2), nullable=False),
        sa.Column("sampling_filter", sa.String(length=10), nullable=False),
        sa.Column("enable_calculated_free_testosterone", sa.Boolean(), nullable=False),
        sa.Column("protocol_window_size", sa.Integer(), nullable=False),
        sa.Column("marker_alias_overrides", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("app_settings")

    op.drop_index("ix_marker_values_canonical_marker", table_name="marker_values")
    op.drop_index("ix_marker_values_report_id", table_name="marker_values")
    op.drop_table("marker_values")

    op.drop_index("ix_lab_reports_test_date", table_name="lab_reports")
    op.drop_table("lab_reports")

    op.drop_index("ix_biomarker_reference_standard_name", table_name="biomarker_reference")
    op.drop_index("ix_biomarker_reference_category", table_name="biomarker_reference")
    op.drop_table("biomarker_reference")
