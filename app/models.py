from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


ROLES = ("admin", "teacher", "parent")


# ---------- Base & naming ----------
class Base(DeclarativeBase):
    # Keep index/constraint names stable for cleaner migrations
    metadata = sa.MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


# ---------- USERS ----------
class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    # always stored lower-cased by the repo, so plain uniqueness is case-insensitive
    email: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    role: Mapped[str] = mapped_column(sa.Text, nullable=False)  # 'admin' | 'teacher' | 'parent'
    first_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    last_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    school_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())

    # admin profile
    school_name: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    school_address: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    school_phone: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    admin_title: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    # parent profile
    parent_phone: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    parent_occupation: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    emergency_contact: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    emergency_contact_phone: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    relationship_to_student: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    # teacher profile
    teacher_subjects: Mapped[Optional[List[str]]] = mapped_column(sa.JSON, nullable=True)
    teacher_qualifications: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    employee_id: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), onupdate=sa.func.now()
    )

    __table_args__ = (
        CheckConstraint("role in ('admin','teacher','parent')", name="users_role"),
        Index("ix_users_school_role", "school_id", "role"),
    )
