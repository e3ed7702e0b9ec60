"""Initial database schema: upstream, aimodel, task."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "upstream",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("base_url", sa.String(length=512), nullable=False),
        sa.Column("api_keys", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_upstream_user_id", "upstream", ["user_id"])

    op.create_table(
        "aimodel",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "upstream_id",
            sa.Integer(),
            sa.ForeignKey("upstream.id"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=16), nullable=False, server_default="image"),
        sa.Column("model_type", sa.String(length=32), nullable=False),
        sa.Column("api_format", sa.String(length=32), nullable=False),
        sa.Column("model_name", sa.String(length=128), nullable=False),
        sa.Column("estimated_time", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("key_name", sa.String(length=64)),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_aimodel_upstream_id", "aimodel", ["upstream_id"])

    op.create_table(
        "task",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("unique_id", sa.String(length=64)),
        sa.Column("upstream_id", sa.Integer(), nullable=False),
        sa.Column("aimodel_id", sa.Integer(), nullable=False),
        sa.Column("task_type", sa.String(length=16), nullable=False, server_default="image"),
        sa.Column("model_type", sa.String(length=32), nullable=False),
        sa.Column("api_format", sa.String(length=32), nullable=False),
        sa.Column("model_name", sa.String(length=128)),
        sa.Column("prompt", sa.Text()),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("model_params", sa.JSON()),
        sa.Column("operation", sa.String(length=16), nullable=False, server_default="imagine"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("upstream_task_id", sa.String(length=128)),
        sa.Column("progress", sa.String(length=32)),
        sa.Column("resource_url", sa.String(length=512)),
        sa.Column("error", sa.Text()),
        sa.Column("buttons", sa.JSON()),
        sa.Column("is_blurred", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("duration_seconds", sa.Float()),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("started_at", sa.DateTime()),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_task_user_id", "task", ["user_id"])
    op.create_index("ix_task_unique_id", "task", ["unique_id"])
    op.create_index("ix_task_status", "task", ["status"])
    op.create_index("ix_task_deleted_at", "task", ["deleted_at"])


def downgrade() -> None:
    op.drop_index("ix_task_deleted_at", table_name="task")
    op.drop_index("ix_task_status", table_name="task")
    op.drop_index("ix_task_unique_id", table_name="task")
    op.drop_index("ix_task_user_id", table_name="task")
    op.drop_table("task")
    op.drop_index("ix_aimodel_upstream_id", table_name="aimodel")
    op.drop_table("aimodel")
    op.drop_index("ix_upstream_user_id", table_name="upstream")
    op.drop_table("upstream")
