"""users directory

Revision ID: 0001_users
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_users"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("school_id", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        # admin profile
        sa.Column("school_name", sa.Text(), nullable=True),
        sa.Column("school_address", sa.Text(), nullable=True),
        sa.Column("school_phone", sa.Text(), nullable=True),
        sa.Column("admin_title", sa.Text(), nullable=True),
        # parent profile
        sa.Column("parent_phone", sa.Text(), nullable=True),
        sa.Column("parent_occupation", sa.Text(), nullable=True),
        sa.Column("emergency_contact", sa.Text(), nullable=True),
        sa.Column("emergency_contact_phone", sa.Text(), nullable=True),
        sa.Column("relationship_to_student", sa.Text(), nullable=True),
        # teacher profile
        sa.Column("teacher_subjects", sa.JSON(), nullable=True),
        sa.Column("teacher_qualifications", sa.Text(), nullable=True),
        sa.Column("employee_id", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role in ('admin','teacher','parent')", name="ck_users_users_role"),
    )
    op.create_unique_constraint("uq_users_email", "users", ["email"])
    op.create_index("ix_users_school_role", "users", ["school_id", "role"])


def downgrade() -> None:
    op.drop_index("ix_users_school_role", table_name="users")
    op.drop_table("users")
