# admin_api.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import accounts, attendance, audit, enrollment, face, inhal, models, permission_requests, reports, schemas, scheduling
from access import require_admin
from cache import TTLCache, get_reference_cache
from database import get_db
from schemas import envelope

router = APIRouter(prefix="/api/admin", tags=["admin"])


# --- Reference data ---
@router.get("/time-slots")
def get_time_slots(db: Session = Depends(get_db), cache: TTLCache = Depends(get_reference_cache), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.list_time_slots(db, cache), "Time slots retrieved.")

@router.get("/rooms")
def get_rooms(db: Session = Depends(get_db), cache: TTLCache = Depends(get_reference_cache), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.list_rooms(db, cache), "Rooms retrieved.")

@router.post("/rooms", status_code=201)
def create_room(body: schemas.RoomCreate, db: Session = Depends(get_db), cache: TTLCache = Depends(get_reference_cache), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.create_room(db, cache, admin, body.code, body.name), "Room created.")

@router.get("/courses")
def get_courses(page: int = 1, limit: int = 100, db: Session = Depends(get_db), cache: TTLCache = Depends(get_reference_cache), admin: models.User = Depends(require_admin)):
    items, meta = scheduling.list_courses(db, cache, page, limit)
    return envelope(items, "Courses retrieved.", pagination=meta)

@router.post("/courses", status_code=201)
def create_course(body: schemas.CourseCreate, db: Session = Depends(get_db), cache: TTLCache = Depends(get_reference_cache), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.create_course(db, cache, admin, body.code, body.name), "Course created.")


# --- Semesters ---
@router.get("/semesters")
def get_semesters(page: int = 1, limit: int = 100, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = scheduling.list_semesters(db, page, limit)
    return envelope(items, "Semesters retrieved.", pagination=meta)

@router.post("/semesters", status_code=201)
def create_semester(body: schemas.SemesterCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.create_semester(db, admin, body.name), "Semester created.")

@router.put("/semesters/{semester_id}/activate")
def activate_semester(semester_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.activate_semester(db, admin, semester_id), "Semester activated.")

@router.get("/semesters/{semester_id}/classes")
def get_semester_classes(semester_id: int, page: int = 1, limit: int = 100, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = scheduling.list_classes(db, semester_id, page, limit)
    return envelope(items, "Classes retrieved.", pagination=meta)

@router.get("/semesters/{semester_id}/schedule")
def get_master_schedule(semester_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.master_schedule(db, semester_id), "Schedule retrieved.")


# --- Classes ---
@router.get("/classes")
def get_classes(semester_id: Optional[int] = None, page: int = 1, limit: int = 100, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = scheduling.list_classes(db, semester_id, page, limit)
    return envelope(items, "Classes retrieved.", pagination=meta)

@router.post("/classes", status_code=201)
def create_class(body: schemas.ClassCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.create_class(db, admin, body), "Class created with 11 sessions.")

@router.put("/classes/{class_id}")
def update_class(class_id: int, body: schemas.ClassUpdate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.update_class(db, admin, class_id, body), "Class updated.")

@router.get("/classes/{class_id}/recap")
def get_class_recap(class_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(reports.class_recap(db, admin, class_id), "Recap retrieved.")


# --- Assistants ---
@router.post("/classes/{class_id}/assistants", status_code=201)
def assign_assistant(class_id: int, body: schemas.AssistantAssign, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.assign_assistant(db, admin, class_id, body.user_id), "Assistant assigned.")

@router.delete("/classes/{class_id}/assistants/{user_id}")
def remove_assistant(class_id: int, user_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.remove_assistant(db, admin, class_id, user_id), "Assistant removed.")

@router.get("/assistants/log")
def get_assistant_log(class_id: Optional[int] = None, user_id: Optional[int] = None, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.assistant_logs(db, class_id, user_id), "Assistant attendance retrieved.")

@router.post("/assistants/validate")
def validate_assistant(body: schemas.AssistantValidate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    row = attendance.validate_assistant(db, admin, body.user_id, body.session_id, body.status)
    return envelope(row, "Assistant attendance validated.")

@router.get("/assistant-recap")
def get_assistant_recap(semester_id: Optional[int] = None, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(scheduling.assistant_recap(db, semester_id), "Assistant recap retrieved.")


# --- Attendance override ---
@router.put("/sessions/{session_id}/attendance")
def update_attendance(session_id: int, body: schemas.AttendanceStatusUpdate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    results = attendance.update_attendance_status(db, admin, session_id, body.updates)
    ok = sum(1 for r in results if r["success"])
    return envelope(results, f"{ok} of {len(results)} records updated.")


# --- Permissions ---
@router.get("/permissions")
def get_permissions(status: Optional[str] = None, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(permission_requests.list_permissions(db, status), "Permissions retrieved.")

@router.put("/permissions/{request_id}/approve")
def approve_permission(request_id: int, body: Optional[schemas.PermissionApprove] = None, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(permission_requests.approve_permission(db, admin, request_id, body.new_status if body else None), "Permission approved.")

@router.put("/permissions/{request_id}/reject")
def reject_permission(request_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(permission_requests.reject_permission(db, admin, request_id), "Permission rejected.")


# --- Payments ---
@router.get("/payments")
def get_payments(status: Optional[str] = None, page: int = 1, limit: int = 50, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = enrollment.list_payments(db, status, page, limit)
    return envelope(items, "Payments retrieved.", pagination=meta)

@router.get("/payments/stats")
def get_payment_stats(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(enrollment.payment_stats(db), "Payment stats retrieved.")

@router.put("/payments/{payment_id}/verify")
def verify_payment(payment_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(enrollment.verify_payment(db, admin, payment_id), "Payment verified and student enrolled.")

@router.put("/payments/{payment_id}/reject")
def reject_payment(payment_id: int, body: Optional[schemas.PaymentReject] = None, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(enrollment.reject_payment(db, admin, payment_id, body.reason if body else None), "Payment rejected.")


# --- INHAL ---
@router.get("/inhal/payments")
def get_inhal_payments(status: Optional[str] = None, page: int = 1, limit: int = 50, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = inhal.list_inhal(db, status, page, limit)
    return envelope(items, "INHAL payments retrieved.", pagination=meta)

@router.get("/inhal/stats")
def get_inhal_stats(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(inhal.inhal_stats(db), "INHAL stats retrieved.")

@router.put("/inhal/payments/{payment_id}/verify")
def verify_inhal(payment_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(inhal.verify_inhal(db, admin, payment_id), "INHAL payment verified.")

@router.put("/inhal/payments/{payment_id}/reject")
def reject_inhal(payment_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(inhal.reject_inhal(db, admin, payment_id), "INHAL payment rejected.")


# --- Users ---
@router.get("/users")
def get_users(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(accounts.list_users(db), "Users retrieved.")

@router.post("/users", status_code=201)
def create_user(body: schemas.UserCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(accounts.create_user(db, admin, body), "User created.")

@router.delete("/users/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    accounts.delete_user(db, admin, user_id)
    return envelope(None, "User deleted.")


# --- Face ---
@router.get("/face/stats")
def get_face_stats(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return envelope(face.face_stats(db), "Face stats retrieved.")

@router.get("/face/students")
def get_face_students(page: int = 1, limit: int = 50, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = face.students_with_face_data(db, page, limit)
    return envelope(items, "Students retrieved.", pagination=meta)

@router.get("/face/logs")
def get_face_logs(page: int = 1, limit: int = 50, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    items, meta = face.face_logs(db, page, limit)
    return envelope(items, "Face attendance logs retrieved.", pagination=meta)


# --- Audit ---
@router.get("/audit-logs")
def get_audit_logs(limit: int = 100, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    rows = [schemas.AuditLogResponse.model_validate(r).model_dump() for r in audit.recent(db, min(limit, 500))]
    return envelope(rows, "Audit logs retrieved.")
