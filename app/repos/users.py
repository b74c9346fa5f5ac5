from __future__ import annotations
import time
import uuid
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import User
from ..domain.schemas.auth import AdminRegistrationIn, ParentRegistrationIn, TeacherCreationIn


class EmailAlreadyRegistered(Exception):
    def __init__(self, email: str):
        super().__init__(f"A user with email {email} already exists")
        self.email = email


def _norm(email: str) -> str:
    return email.strip().lower()


def generate_school_id(school_name: str) -> str:
    # SCH_<NAME_WITH_UNDERSCORES>_<epoch ms>
    slug = "_".join(school_name.split()).upper()
    return f"SCH_{slug}_{int(time.time() * 1000)}"


async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == _norm(email)))
    return res.scalar_one_or_none()


async def list_teachers_by_school(db: AsyncSession, school_id: str) -> List[User]:
    res = await db.execute(
        select(User)
        .where(User.role == "teacher", User.school_id == school_id, User.is_active.is_(True))
        .order_by(User.last_name, User.first_name)
    )
    return list(res.scalars().all())


async def _insert(db: AsyncSession, user: User) -> User:
    if await get_by_email(db, user.email):
        raise EmailAlreadyRegistered(user.email)
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        # lost a race against a concurrent registration of the same email
        await db.rollback()
        raise EmailAlreadyRegistered(user.email) from exc
    return user


async def create_admin(db: AsyncSession, data: AdminRegistrationIn) -> User:
    user = User(
        email=_norm(data.email),
        role="admin",
        first_name=data.first_name,
        last_name=data.last_name,
        school_id=data.school_id or generate_school_id(data.school_name),
        school_name=data.school_name,
        school_address=data.school_address,
        school_phone=data.school_phone,
        admin_title=data.admin_title,
    )
    return await _insert(db, user)


async def create_parent(db: AsyncSession, data: ParentRegistrationIn) -> User:
    user = User(
        email=_norm(data.email),
        role="parent",
        first_name=data.first_name,
        last_name=data.last_name,
        school_id=data.school_id,
        parent_phone=data.parent_phone,
        parent_occupation=data.parent_occupation,
        emergency_contact=data.emergency_contact,
        emergency_contact_phone=data.emergency_contact_phone,
        relationship_to_student=data.relationship_to_student,
    )
    return await _insert(db, user)


async def create_teacher(db: AsyncSession, data: TeacherCreationIn) -> User:
    user = User(
        email=_norm(data.email),
        role="teacher",
        first_name=data.first_name,
        last_name=data.last_name,
        school_id=data.school_id,
        teacher_subjects=list(data.teacher_subjects),
        teacher_qualifications=data.teacher_qualifications,
        employee_id=data.employee_id,
    )
    return await _insert(db, user)
