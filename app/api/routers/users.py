from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...db import get_db
from ...models import User
from ...repos import users as users_repo
from ...auth.deps import require_admin
from ...domain.schemas.auth import CreatedUserOut, TeacherCreationIn, UserOut
from ..errors import ApiError

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/teachers/create")
async def create_teacher(
    payload: TeacherCreationIn,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if payload.school_id != admin.school_id:
        raise ApiError(status.HTTP_403_FORBIDDEN, "Cannot create teachers for another school")
    try:
        teacher = await users_repo.create_teacher(db, payload)
    except users_repo.EmailAlreadyRegistered as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc))
    await db.commit()
    out = CreatedUserOut(id=str(teacher.id), email=teacher.email, role=teacher.role, school_id=teacher.school_id)
    return {"success": True, "message": "Teacher account created successfully", "user": out.model_dump(by_alias=True)}


@router.get("/teachers")
async def list_teachers(schoolId: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    if not schoolId:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "School ID is required")
    teachers = await users_repo.list_teachers_by_school(db, schoolId)
    rows = []
    for t in teachers:
        row = UserOut.from_model(t).model_dump(by_alias=True)
        row["teacherSubjects"] = t.teacher_subjects or []
        row["employeeId"] = t.employee_id
        rows.append(row)
    return {"success": True, "teachers": rows}


@router.get("/users/{email}")
async def get_user(email: str, db: AsyncSession = Depends(get_db)):
    user = await users_repo.get_by_email(db, email)
    if not user:
        raise ApiError(status.HTTP_404_NOT_FOUND, "User not found")
    return {"success": True, "user": UserOut.from_model(user).model_dump(by_alias=True)}
