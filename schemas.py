# schemas.py
from math import ceil
from pydantic import BaseModel, Field
from typing import Any, Optional, List
from datetime import datetime


def envelope(data: Any = None, message: str = "OK", **extra) -> dict:
    body = {"success": True, "message": message, "data": data}
    body.update(extra)
    return body


def page_meta(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "pages": max(1, ceil(total / limit)) if limit else 1}


def paginate(query, page: int, limit: int):
    """Returns (items, pagination) for a SQLAlchemy query."""
    page = max(1, page)
    limit = max(1, min(limit, 100))
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, page_meta(page, limit, total)


# --- Auth ---
class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    nim: Optional[str] = None

class LoginRequest(BaseModel):
    email: str
    password: str

class RefreshRequest(BaseModel):
    refresh_token: str

class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)

class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str
    nim: Optional[str] = None
    is_admin: bool = False


# --- Reference data ---
class RoomCreate(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)

class CourseCreate(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)

class SemesterCreate(BaseModel):
    name: str = Field(min_length=1)


# --- Classes ---
class ClassCreate(BaseModel):
    course_id: int
    semester_id: int
    name: str = Field(min_length=1)
    quota: int = Field(ge=1)
    day_of_week: int = Field(ge=1, le=5)
    time_slot_id: int
    room_id: int

class ClassUpdate(BaseModel):
    course_id: Optional[int] = None
    name: Optional[str] = None
    quota: Optional[int] = Field(default=None, ge=1)
    day_of_week: Optional[int] = Field(default=None, ge=1, le=5)
    time_slot_id: Optional[int] = None
    room_id: Optional[int] = None


# --- Assistants ---
class AssistantAssign(BaseModel):
    user_id: int

class AssistantValidate(BaseModel):
    user_id: int
    session_id: int
    status: str = "HADIR"

class CheckInRequest(BaseModel):
    session_id: int


# --- Attendance ---
class AttendanceSubmit(BaseModel):
    session_id: int

class AttendanceStatusItem(BaseModel):
    student_id: int
    status: str

class AttendanceStatusUpdate(BaseModel):
    updates: List[AttendanceStatusItem]

class BatchAttendanceItem(BaseModel):
    student_id: int
    status: str
    grade: Optional[float] = None

class BatchAttendanceUpdate(BaseModel):
    updates: List[BatchAttendanceItem]


# --- Grades ---
class GradeUpdate(BaseModel):
    student_id: int
    session_id: int
    grade: float

class SessionGradeItem(BaseModel):
    student_id: int
    grade: float

class SessionGradeBatch(BaseModel):
    grades: List[SessionGradeItem]


# --- Permissions / payments ---
class PermissionSubmit(BaseModel):
    session_id: int
    reason: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_data: str = Field(min_length=1)

class PermissionApprove(BaseModel):
    new_status: Optional[str] = None

class PaymentReject(BaseModel):
    reason: Optional[str] = None

class PaymentSubmit(BaseModel):
    class_id: int
    proof_file_name: str = Field(min_length=1)
    proof_file_data: str = Field(min_length=1)

class InhalSubmit(BaseModel):
    session_id: int
    proof_file_name: str = Field(min_length=1)
    proof_file_data: str = Field(min_length=1)


# --- Face ---
class FaceUpload(BaseModel):
    images: List[str]

class FaceDescriptors(BaseModel):
    descriptors: List[List[float]]

class FaceAttendanceMark(BaseModel):
    session_id: int
    student_id: int
    confidence_score: float
    captured_image: Optional[str] = None
    device_info: Optional[str] = None


class AuditLogResponse(BaseModel):
    id: int
    actor_id: Optional[int]
    target_type: str
    target_id: Optional[int] = None
    action: str
    details: Optional[str]
    created_at: datetime
    class Config: from_attributes = True
