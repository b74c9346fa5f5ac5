from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel

from .otp import Role

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
OptText = Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=200)]]


class CamelModel(BaseModel):
    # wire format is camelCase, python side stays snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendOtpIn(CamelModel):
    email: EmailStr
    role: Role
    # optional profile captured at request time, echoed back after verification
    first_name: OptText = None
    last_name: OptText = None
    school_id: OptText = None


class VerifyOtpIn(CamelModel):
    email: EmailStr
    otp: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=12)]


class UserOut(CamelModel):
    id: str
    email: EmailStr
    role: Role
    first_name: str
    last_name: str
    school_id: str

    @classmethod
    def from_model(cls, u) -> "UserOut":
        return cls(
            id=str(u.id),
            email=u.email,
            role=u.role,
            first_name=u.first_name,
            last_name=u.last_name,
            school_id=u.school_id,
        )


class CreatedUserOut(CamelModel):
    id: str
    email: EmailStr
    role: Role
    school_id: str


class AdminRegistrationIn(CamelModel):
    email: EmailStr
    first_name: Name
    last_name: Name
    school_name: Name
    school_address: OptText = None
    school_phone: OptText = None
    admin_title: OptText = None
    school_id: OptText = None


class ParentRegistrationIn(CamelModel):
    email: EmailStr
    first_name: Name
    last_name: Name
    school_id: Name
    parent_phone: OptText = None
    parent_occupation: OptText = None
    emergency_contact: OptText = None
    emergency_contact_phone: OptText = None
    relationship_to_student: OptText = None


class TeacherCreationIn(CamelModel):
    email: EmailStr
    first_name: Name
    last_name: Name
    school_id: Name
    teacher_subjects: List[Name] = Field(default_factory=list)
    teacher_qualifications: OptText = None
    employee_id: OptText = None
