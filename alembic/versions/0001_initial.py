"""Masks, scene definitions and generation history.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "product_masks",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=128)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "scene_definitions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "mask_id",
            sa.String(length=64),
            sa.ForeignKey("product_masks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
    )
    op.create_index("ix_scene_definitions_mask_id", "scene_definitions", ["mask_id"])
    op.create_table(
        "generation_history",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("task_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("mask_id", sa.String(length=64)),
        sa.Column("definition_id", sa.String(length=64), nullable=False),
        sa.Column("definition_name", sa.String(length=255), nullable=False),
        sa.Column("source_image", sa.Text(), nullable=False),
        sa.Column("image_result", sa.Text(), nullable=False),
        sa.Column("prompt", sa.Text()),
        sa.Column("model_provider", sa.String(length=32), nullable=False),
        sa.Column("model_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_generation_history_user_id", "generation_history", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_generation_history_user_id", table_name="generation_history")
    op.drop_table("generation_history")
    op.drop_index("ix_scene_definitions_mask_id", table_name="scene_definitions")
    op.drop_table("scene_definitions")
    op.drop_table("product_masks")
